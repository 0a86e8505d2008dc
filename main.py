#!/usr/bin/env python3
"""
Stellar Antivirus Entry Point
"""
from stellar_av.cli import cli

if __name__ == '__main__':
    cli()
