"""
Gateway module for the remote reply and speech services.
"""

from gaian_voice.gateway.remote_gateway import RemoteGateway, RemoteGatewayBase

__all__ = [
    "RemoteGateway",
    "RemoteGatewayBase",
]
