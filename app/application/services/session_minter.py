import logging
from dataclasses import dataclass

from ..calls import bounded
from ..errors import MintFailure
from ..ports.session_provider import SessionProvider, SessionTokens
from .identity_resolver import Resolution

logger = logging.getLogger(__name__)


@dataclass
class SessionMinter:
    """Issue a fresh session for a resolved identity without a password.

    The session infrastructure only knows credential-based sign-in, so the
    minter creates a one-time bootstrap credential for the identity's login key
    and redeems it in the same call. The credential never leaves this class.
    """

    provider: SessionProvider
    timeout_seconds: float = 10.0

    async def mint(self, resolution: Resolution) -> SessionTokens:
        credential = await self._bootstrap(resolution)
        tokens = await bounded(self.provider.redeem(credential), self.timeout_seconds, MintFailure, "Bootstrap credential redeem")
        logger.info(f"Session minted for identity {resolution.identity_id}")
        return tokens

    async def _bootstrap(self, resolution: Resolution) -> str:
        return await bounded(
            self.provider.mint_bootstrap_credential(resolution.identity_id, resolution.login_key),
            self.timeout_seconds,
            MintFailure,
            "Bootstrap credential mint",
        )
