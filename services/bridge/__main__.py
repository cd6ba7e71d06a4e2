#!/usr/bin/env python3
"""Entry point for running the bridge service as a module."""

from services.bridge.daemon import MeetBridgeDaemon

if __name__ == "__main__":
    MeetBridgeDaemon.main()
