"""
System configuration for the encrypted water allocation service.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AllocationConfig(BaseModel):
    """Runtime configuration"""
    target_zone: str = "default"
    oracle_identity: str = "decryption-oracle"
    zone_administrators: List[str] = Field(default_factory=lambda: ["water-authority"])
    # identity -> trust token, for the oracle and administrators
    caller_tokens: Dict[str, str] = Field(default_factory=dict)
    # None keeps in-flight decryptions uncancellable and zone reveals unexpiring
    decryption_timeout_seconds: Optional[float] = Field(default=3600.0, gt=0)
    audit_log_file: Optional[str] = None
    backend: str = Field(default="mirror", pattern="^(mirror|tenseal)$")
    host: str = "0.0.0.0"
    port: int = 8000
