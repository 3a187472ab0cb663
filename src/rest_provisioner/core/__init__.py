"""Core infrastructure components for rest-provisioner."""

from rest_provisioner.core.provider import RestProvider, TokenAuth
from rest_provisioner.core.state import RemoteRecord, State

__all__ = ["RemoteRecord", "RestProvider", "State", "TokenAuth"]
