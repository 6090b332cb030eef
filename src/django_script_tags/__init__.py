# flake8: noqa F401
"""Render `<script>` tags with globbed sources and client-side fallbacks in Django templates."""

from django_script_tags.app_settings import ScriptTagsSettings
from django_script_tags.globbing import FileMatcher, GlobbingUrlBuilder, PathSpecFileMatcher, WebrootFileMatcher
from django_script_tags.modes import MODE_DETAILS, Mode, ModeAttributes, ModeMatchResult, determine_mode
from django_script_tags.node import BaseNode
from django_script_tags.script import (
    ScriptNode,
    ScriptTagOptions,
    ScriptTagRenderer,
    build_fallback_block,
    build_script_tag,
    render_script_tag,
)

__all__ = [
    "BaseNode",
    "FileMatcher",
    "GlobbingUrlBuilder",
    "MODE_DETAILS",
    "Mode",
    "ModeAttributes",
    "ModeMatchResult",
    "PathSpecFileMatcher",
    "ScriptNode",
    "ScriptTagOptions",
    "ScriptTagRenderer",
    "ScriptTagsSettings",
    "WebrootFileMatcher",
    "build_fallback_block",
    "build_script_tag",
    "determine_mode",
    "render_script_tag",
]
