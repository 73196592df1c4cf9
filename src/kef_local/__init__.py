"""
KEF Local Control Server

Discovery, control and live state synchronization for KEF wireless
speakers over their local HTTP API.
"""

__version__ = "1.0.0"
