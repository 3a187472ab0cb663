"""Desired-state resource definitions."""

from rest_provisioner.resources.base import Resource
from rest_provisioner.resources.declarative import DeclarativeResource
from rest_provisioner.resources.imperative import (
    IMPERATIVE_KIND,
    ImperativeCall,
    ImperativeResource,
)

__all__ = [
    "IMPERATIVE_KIND",
    "DeclarativeResource",
    "ImperativeCall",
    "ImperativeResource",
    "Resource",
]
