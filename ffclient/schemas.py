from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str = Field(..., min_length=1, description="subject the evaluations are computed for")
    name: Optional[str] = None
    anonymous: bool = False
    attributes: Dict[str, Any] = {}

    def loggable_attributes(self, all_private: bool, private_names: List[str]) -> Dict[str, Any]:
        if all_private:
            return {}
        hidden = set(private_names)
        return {k: v for k, v in self.attributes.items() if k not in hidden}


class Evaluation(BaseModel):
    # extra fields (identifier, kind, ...) are raw evaluation metadata
    model_config = ConfigDict(frozen=True, extra="allow")

    flag: str
    value: Any = None
    deleted: bool = False


class StreamEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    identifier: str


class AuthResponse(BaseModel):
    authToken: str = Field(..., min_length=1)
