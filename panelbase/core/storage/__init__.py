"""Storage locations"""
