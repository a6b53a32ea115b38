"""
cs2_launcher package
--------------------
CS2 dedicated server launcher for Windows hosts and containers.
Installs and updates the server through SteamCMD, installs and toggles
Metamod / CounterStrikeSharp plugins from a JSON manifest list, supervises the
server process and exposes remote console sessions and a dashboard over HTTP.
"""

__version__ = "0.1.0"
