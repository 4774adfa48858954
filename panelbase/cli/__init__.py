"""PanelBase command line interface"""
