#!/usr/bin/env python3
"""
Daemon scaffolding shared by bridge services.

- SingleInstance: one running copy per service name, enforced with flock
- BaseDaemon: CLI flags, SIGTERM/SIGINT, stderr logging, startup/run/shutdown hooks

A service subclasses BaseDaemon, sets `name`, and implements run_daemon():

    class EchoDaemon(BaseDaemon):
        name = "echo"

        async def run_daemon(self):
            await self._shutdown_event.wait()

    EchoDaemon.main()
"""

import argparse
import asyncio
import fcntl
import logging
import os
import signal
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(name)s - %(levelname)s - %(message)s"

# Libraries that are chatty at DEBUG/INFO
QUIET_LOGGERS = ("httpx", "httpcore", "websockets")


def runtime_dir() -> Path:
    return Path(os.environ.get("XDG_RUNTIME_DIR") or "/tmp")


class SingleInstance:
    """
    Exclusive lock for a service name.

    The lock file holds the owner's PID, so `--status` and `--stop` can
    find the running copy without a separate pid file.
    """

    def __init__(self, name: str, lock_dir: Optional[str] = None):
        self.name = name
        self.lock_dir = Path(lock_dir) if lock_dir else runtime_dir()
        self._handle = None

    @property
    def lock_path(self) -> Path:
        return self.lock_dir / f"{self.name}.lock"

    @property
    def is_acquired(self) -> bool:
        return self._handle is not None

    def acquire(self) -> bool:
        """Take the lock. False means some other process holds it."""
        handle = open(self.lock_path, "a+")
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.close()
            return False

        handle.seek(0)
        handle.truncate()
        handle.write(f"{os.getpid()}\n")
        handle.flush()
        self._handle = handle
        return True

    def release(self):
        if self._handle is None:
            return
        try:
            self._handle.seek(0)
            self._handle.truncate()
            fcntl.flock(self._handle, fcntl.LOCK_UN)
        except OSError as e:
            logger.debug(f"[DAEMON] Could not release {self.lock_path}: {e}")
        finally:
            self._handle.close()
            self._handle = None

    def get_running_pid(self) -> Optional[int]:
        """PID recorded in the lock file, if that process is still alive."""
        try:
            pid = int(self.lock_path.read_text().strip())
        except (OSError, ValueError):
            return None
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return None
        except PermissionError:
            pass
        return pid


class BaseDaemon(ABC):
    """
    Lifecycle for a single-instance asyncio service.

    run() takes the instance lock, installs signal handlers, then awaits
    startup(), run_daemon() and (always) shutdown(). Logs go to stderr;
    stdout belongs to the service.
    """

    name: str = ""
    description: str = ""

    def __init__(self, verbose: bool = False):
        if not self.name:
            raise ValueError(f"{type(self).__name__} must define a name")

        self.verbose = verbose
        self.exit_code = 0
        self._shutdown_event = asyncio.Event()
        self._instance = SingleInstance(self.name)

    @property
    def is_shutting_down(self) -> bool:
        return self._shutdown_event.is_set()

    @abstractmethod
    async def run_daemon(self):
        """Service body. Return once the shutdown event is set."""

    async def startup(self):
        pass

    async def shutdown(self):
        pass

    def request_shutdown(self):
        if self._shutdown_event.is_set():
            return
        logger.info(f"[DAEMON] Stopping {self.name}")
        self._shutdown_event.set()

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(signum, self._on_signal, signum)

    def _on_signal(self, signum: int):
        logger.info(f"[DAEMON] Got {signal.Signals(signum).name}")
        self.request_shutdown()

    async def _lifecycle(self):
        self._install_signal_handlers()
        try:
            await self.startup()
            logger.info(f"[DAEMON] {self.name} running (PID {os.getpid()})")
            await self.run_daemon()
        except asyncio.CancelledError:
            logger.info(f"[DAEMON] {self.name} cancelled")
        except Exception as e:
            logger.exception(f"[DAEMON] {self.name} failed: {e}")
            self.exit_code = 1
        finally:
            await self.shutdown()

    def run(self) -> int:
        """Block until the service stops. Returns the process exit code."""
        if not self._instance.acquire():
            pid = self._instance.get_running_pid()
            print(f"{self.name} is already running (PID: {pid})", file=sys.stderr)
            return 1

        try:
            asyncio.run(self._lifecycle())
        finally:
            self._instance.release()
        return self.exit_code

    # ==================== CLI ====================

    @classmethod
    def configure_logging(cls, verbose: bool = False):
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=LOG_FORMAT,
            handlers=[logging.StreamHandler(sys.stderr)],
        )
        for noisy in QUIET_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)

    @classmethod
    def create_argument_parser(cls) -> argparse.ArgumentParser:
        """Flags every service has. Extend in subclasses."""
        parser = argparse.ArgumentParser(prog=cls.name, description=cls.description or None)
        control = parser.add_mutually_exclusive_group()
        control.add_argument("--status", action="store_true", help="report whether the service is running")
        control.add_argument("--stop", action="store_true", help="send SIGTERM to the running service")
        parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
        return parser

    @classmethod
    def from_args(cls, parsed: argparse.Namespace) -> "BaseDaemon":
        return cls(verbose=parsed.verbose)

    @classmethod
    def handle_status(cls) -> int:
        pid = SingleInstance(cls.name).get_running_pid()
        if pid is None:
            print(f"{cls.name}: stopped")
            return 1
        print(f"{cls.name}: running (PID {pid})")
        return 0

    @classmethod
    def handle_stop(cls) -> int:
        pid = SingleInstance(cls.name).get_running_pid()
        if pid is None:
            print(f"{cls.name}: not running")
            return 1
        try:
            os.kill(pid, signal.SIGTERM)
        except OSError as e:
            print(f"{cls.name}: could not signal PID {pid}: {e}", file=sys.stderr)
            return 1
        print(f"{cls.name}: SIGTERM sent to PID {pid}")
        return 0

    @classmethod
    def main(cls, args: Optional[list] = None):
        parsed = cls.create_argument_parser().parse_args(args)

        if parsed.status:
            sys.exit(cls.handle_status())
        if parsed.stop:
            sys.exit(cls.handle_stop())

        cls.configure_logging(verbose=parsed.verbose)
        sys.exit(cls.from_args(parsed).run())
