"""HTTP service: conversion proxy and orchestration endpoints."""

from .app import create_app

__all__ = ["create_app"]
