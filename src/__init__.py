"""dojo-installer — unattended DefectDojo installer."""

__version__ = "0.1.0"
