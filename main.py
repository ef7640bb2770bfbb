#!/usr/bin/env python3
"""
Main entry point for running gh-traffic-stats from a source checkout.
"""

import os
import sys

# Add the project directory to the Python path
sys.path.insert(0, os.path.dirname(__file__))

from gh_traffic_stats.cli import main

if __name__ == "__main__":
    sys.exit(main())
