"""PanelBase - extension package manager for themes, plugins and commands"""

__version__ = "0.1.0"
