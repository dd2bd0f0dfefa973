from .manager import Endpoint, RpcManager, RpcManagerClosed, to_commitment

__all__ = ["Endpoint", "RpcManager", "RpcManagerClosed", "to_commitment"]
