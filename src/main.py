"""
psclient - PowerShell pipeline client.

Runs PowerShell pipelines locally or over WinRM and moves files to and from
the target machine.
"""

import sys
from psclient.interface.cli import main


if __name__ == "__main__":
    sys.exit(main())
