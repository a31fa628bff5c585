"""Loads system prompt templates from the prompt directory."""

from __future__ import annotations

import logging
from pathlib import Path
from string import Template

from rulecraft.core.config import settings
from rulecraft.exceptions import PromptTemplateNotFoundError

logger = logging.getLogger(__name__)


class PromptTemplateService:
    """Read ``<template_dir>/<name>.md`` files, caching them after first use.

    Templates may contain ``$placeholders`` filled by ``render``.
    """

    def __init__(self, template_dir: str | None = None) -> None:
        self._template_dir = Path(template_dir or settings.prompt_template_dir)
        self._cache: dict[str, str] = {}

    def load_template(self, name: str) -> str:
        if name in self._cache:
            return self._cache[name]

        path = self._template_dir / f"{name}.md"
        if not path.is_file():
            raise PromptTemplateNotFoundError(name, str(path))

        text = path.read_text(encoding="utf-8")
        self._cache[name] = text
        logger.debug("Loaded prompt template %s (%d chars)", name, len(text))
        return text

    def render(self, name: str, **values: str) -> str:
        """Load a template and substitute ``$name`` placeholders.

        Unknown placeholders are left as-is.
        """
        return Template(self.load_template(name)).safe_substitute(values)
