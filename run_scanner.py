#!/usr/bin/env python3
"""
PumpSwap / Meteora DLMM arbitrage scanner.

Usage:
    python3 run_scanner.py
    python3 run_scanner.py monitor
    python3 run_scanner.py analysis --config configs/scanner.example.yaml
    python3 run_scanner.py scan --cycles 1
"""

import sys

from sol_arb.cli import main

if __name__ == "__main__":
    sys.exit(main())
