"""
Local package for DevReload.

This package holds the configuration layer, the collaborator command
definitions and the supervisor itself.
"""
