# ============================================================================
# Vault API Routes Module
# ============================================================================

from app.api.vault import router as vault_router

__all__ = ["vault_router"]
