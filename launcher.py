"""
Launcher script for the MinuteMaster recording wizard.

This script launches the Streamlit app with proper configuration.
PyInstaller will bundle this as the main entry point.
"""

import os
import sys
from pathlib import Path

if getattr(sys, "frozen", False):
    # Running as compiled executable
    # PyInstaller creates a _internal folder with all bundled files
    application_path = Path(sys.executable).parent
    bundle_dir = application_path / "_internal"
else:
    # Running as script
    application_path = Path(__file__).parent
    bundle_dir = application_path

app_file = bundle_dir / "src" / "minutemaster" / "ui" / "app.py"

# Set working directory and make the package importable without installation
os.chdir(application_path)
sys.path.insert(0, str(bundle_dir / "src"))

from streamlit.web import cli as stcli

if __name__ == "__main__":
    # Configure Streamlit to run in headless mode
    sys.argv = [
        "streamlit",
        "run",
        str(app_file),
        "--server.headless=true",
        "--browser.gatherUsageStats=false",
        "--server.port=8501",
        "--server.address=localhost",
        "--global.developmentMode=false",
    ]

    sys.exit(stcli.main())
