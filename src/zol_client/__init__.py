"""
zol_client - reliability and transaction-lifecycle layer for the ZOL program.

Usage:
    from zol_client import ZolConfig, ZolContext
    from zol_client.adapters.signer.keypair_signer import KeypairSigner

    config = ZolConfig.load("settings.toml")
    ctx = ZolContext.create(config, signer=KeypairSigner(keypair))

    controller = ctx.new_controller()
    signature = await controller.deposit(5_000_000)  # 5 USDC

    await ctx.aclose()
"""

from .application.context import ZolContext
from .infrastructure.config.app_config import ZolConfig

__version__ = "0.1.0"

__all__ = ["ZolConfig", "ZolContext", "__version__"]
