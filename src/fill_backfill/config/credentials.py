"""API credential file loading."""

from pathlib import Path
from typing import Union

from pydantic import BaseModel, ValidationError

from ..errors import CredentialError


class FtxCredential(BaseModel):
    """API key pair read from the credential JSON file."""
    api_key: str
    api_secret: str


def load_credential(path: Union[str, Path]) -> FtxCredential:
    """
    Read a credential file of the form ``{"api_key": ..., "api_secret": ...}``.

    Raises:
        CredentialError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialError(f"failed to read credential file {path}: {e}") from e

    try:
        return FtxCredential.model_validate_json(content)
    except ValidationError as e:
        raise CredentialError(f"failed to parse credential file {path}: {e}") from e
