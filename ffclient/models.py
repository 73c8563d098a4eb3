from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class AuthSession:
    token: str
    environment: str
    claims: Dict[str, Any] = field(default_factory=dict)

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}
