"""
qBittorrent Port Plugin - Keep qBittorrent listening on a VPN's forwarded port.

Reads the forwarded port from a file written by the VPN client and updates
qBittorrent's listening port through its WebUI API whenever the two differ.
"""

from .config import PluginConfig, load_config
from .port_syncer import LoopState, PortSyncer
from .qbittorrent_client import QBittorrentClient

__version__ = "0.1.0"
__all__ = ["PluginConfig", "load_config", "LoopState", "PortSyncer", "QBittorrentClient"]
