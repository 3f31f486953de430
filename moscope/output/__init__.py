"""
Output generation modules.
"""

from .report import ReportOptions, MachOReport, ArchitectureReport, build_report
from .text_report import TextReport

__all__ = ['ReportOptions', 'MachOReport', 'ArchitectureReport', 'build_report', 'TextReport']
