"""
Recording wizard front end.

``minutemaster.ui.app`` is the Streamlit script; the step logic lives in
``minutemaster.ui.wizard`` so it can be used without Streamlit.
"""

from .wizard import WizardError, WizardState, WizardStep

__all__ = ["WizardError", "WizardState", "WizardStep"]
