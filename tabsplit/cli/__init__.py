"""Unified command-line interface for tabsplit.

Usage:
    tabsplit serve [--host] [--port]
    tabsplit scan <file> [--mode structured|text]
    tabsplit list <group_id>
"""
