"""
Payroll import pipeline.

Bulk tabular import of employee records, employee identifiers, pay codes and
time-clock punches from CSV and spreadsheet files.
"""

__version__ = "0.4.0"
