#!/usr/bin/env python3
"""
Report - Terminal display of encoding scan results

This module renders scan summaries from any client (IMAP, mbox, dummy)
using rich.
"""

from .core import SummaryReport, render_summary

__all__ = [
    'SummaryReport',
    'render_summary'
]
