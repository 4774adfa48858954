"""PanelBase core: extension engine, storage layout, utilities"""
