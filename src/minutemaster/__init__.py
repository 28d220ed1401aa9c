"""
MinuteMaster: record a meeting, transcribe it, keep the work-related parts,
name the speakers and export summary and transcript Word documents.
"""

__version__ = "0.1.0"
