"""
Rendering of the `<script>` tags, and of the fallback block that loads
other scripts if the primary one failed to load.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from html import unescape
from typing import Any

from django.template import Context, TemplateSyntaxError
from django.urls import get_script_prefix
from django.utils.html import conditional_escape, escape, escapejs
from django.utils.safestring import mark_safe

from django_script_tags.app_settings import app_settings
from django_script_tags.cache import get_glob_cache
from django_script_tags.globbing import GlobbingUrlBuilder, WebrootFileMatcher
from django_script_tags.modes import (
    ASP_ATTRIBUTE_NAMES,
    FALLBACK_SRC_ATTRIBUTE_NAME,
    FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME,
    FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME,
    FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME,
    MODE_DETAILS,
    SRC_ATTRIBUTE_NAME,
    SRC_EXCLUDE_ATTRIBUTE_NAME,
    SRC_INCLUDE_ATTRIBUTE_NAME,
    Mode,
    ModeAttributes,
    determine_mode,
)
from django_script_tags.node import BaseNode
from django_script_tags.util.logger import logger, trace
from django_script_tags.util.misc import gen_id

Encoder = Callable[[str], str]


def html_encode(value: str) -> str:
    return str(escape(value))


def javascript_string_encode(value: str) -> str:
    return str(escapejs(value))


def build_script_tag(attributes: Mapping[str, str], content: str) -> str:
    """
    Render a `<script>` tag with given attributes and content.

    Attribute values MUST already be HTML-escaped, and content is inserted as is.

    ```python
    build_script_tag({"src": "a.js", "defer": "defer"}, "")
    # '<script src="a.js" defer="defer"></script>'
    ```
    """
    parts = ["<script"]
    for key, value in attributes.items():
        parts.append(f' {key}="{value}"')
    parts.append(">")
    parts.append(content)
    parts.append("</script>")
    return "".join(parts)


def build_fallback_block(
    attributes: Mapping[str, str],
    test_expression: str,
    fallback_srcs: Sequence[str],
    *,
    html_encoder: Encoder = html_encode,
    js_encoder: Encoder = javascript_string_encode,
) -> str:
    """
    Render the inline `<script>` that checks `test_expression` in the browser and, if it's falsy,
    writes `<script>` tags for each of `fallback_srcs` into the document.

    The fallback tags get the same attributes as the primary tag, except for `src`.
    Returns empty string if there are no `fallback_srcs`.

    ```python
    build_fallback_block({"src": "lib.js"}, "window.Lib", ["lib.min.js"])
    # '<script>(window.Lib||document.write("<script src=\\"lib.min.js\\"><\\/script>"));</script>'
    ```
    """
    if not fallback_srcs:
        return ""

    src_key = _find_src_key(attributes)

    # All fallback tags are written with a single `document.write()`, so the block stays
    # a single valid expression however many fallback URLs there are.
    tags: list[str] = []
    for src in fallback_srcs:
        tag = ["<script"]
        if src_key is None:
            tag.append(_fallback_src_attr(SRC_ATTRIBUTE_NAME, src, html_encoder))

        for key, value in attributes.items():
            if key == src_key:
                tag.append(_fallback_src_attr(key, src, html_encoder))
            else:
                tag.append(f' {js_encoder(key)}=\\"{js_encoder(value)}\\"')

        # `<\/script>` so the browser doesn't end the outer script early
        tag.append("><\\/script>")
        tags.append("".join(tag))

    return f'<script>({test_expression}||document.write("{"".join(tags)}"));</script>'


def _fallback_src_attr(key: str, src: str, html_encoder: Encoder) -> str:
    # No need to encode the key, because we know it is "src".
    return f' {key}=\\"{html_encoder(src)}\\"'


def _find_src_key(attributes: Mapping[str, str]) -> str | None:
    for key in attributes:
        if key.lower() == SRC_ATTRIBUTE_NAME:
            return key
    return None


@dataclass(frozen=True)
class ScriptTagOptions:
    """Values of the `asp-*` attributes of a `{% script %}` tag, as given by the user (NOT escaped)."""

    src_include: str | None = None
    src_exclude: str | None = None
    fallback_src: str | None = None
    fallback_src_include: str | None = None
    fallback_src_exclude: str | None = None
    fallback_test_expression: str | None = None

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, Any]) -> "ScriptTagOptions":
        def get(name: str) -> str | None:
            value = attributes.get(name)
            return None if value is None else str(value)

        return cls(
            src_include=get(SRC_INCLUDE_ATTRIBUTE_NAME),
            src_exclude=get(SRC_EXCLUDE_ATTRIBUTE_NAME),
            fallback_src=get(FALLBACK_SRC_ATTRIBUTE_NAME),
            fallback_src_include=get(FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME),
            fallback_src_exclude=get(FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME),
            fallback_test_expression=get(FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME),
        )

    @property
    def present_attributes(self) -> set[str]:
        """Names of the `asp-*` attributes that were set on the tag."""
        values = {
            SRC_INCLUDE_ATTRIBUTE_NAME: self.src_include,
            SRC_EXCLUDE_ATTRIBUTE_NAME: self.src_exclude,
            FALLBACK_SRC_ATTRIBUTE_NAME: self.fallback_src,
            FALLBACK_SRC_INCLUDE_ATTRIBUTE_NAME: self.fallback_src_include,
            FALLBACK_SRC_EXCLUDE_ATTRIBUTE_NAME: self.fallback_src_exclude,
            FALLBACK_TEST_EXPRESSION_ATTRIBUTE_NAME: self.fallback_test_expression,
        }
        return {name for name, value in values.items() if value is not None}


class ScriptTagRenderer:
    """
    Turn one `{% script %}` tag into the final HTML.

    Depending on which `asp-*` options were given, the output is either:

    - The tag as it was written (no recognized options),
    - One `<script>` tag per URL matched by `asp-src-include` (globbed src),
    - The primary `<script>` tag(s) followed by the fallback block (fallback).

    The renderer is meant to be used for a single tag render, and NOT to be shared
    between renders.
    """

    def __init__(
        self,
        options: ScriptTagOptions,
        *,
        url_builder_factory: Callable[[], GlobbingUrlBuilder],
        mode_details: Sequence[ModeAttributes] = MODE_DETAILS,
        html_encoder: Encoder = html_encode,
        js_encoder: Encoder = javascript_string_encode,
        tag_id: str | None = None,
        template_name: str | None = None,
    ) -> None:
        self.options = options
        self.mode_details = mode_details
        self.html_encoder = html_encoder
        self.js_encoder = js_encoder
        self.tag_id = tag_id or gen_id()
        self.template_name = template_name
        self._url_builder_factory = url_builder_factory
        self._url_builder: GlobbingUrlBuilder | None = None

    @property
    def url_builder(self) -> GlobbingUrlBuilder:
        # Created lazily, so tags that don't glob don't need the webroot or cache to be configured.
        if self._url_builder is None:
            self._url_builder = self._url_builder_factory()
        return self._url_builder

    def render(self, attributes: Mapping[str, str], get_content: Callable[[], str]) -> str:
        """
        Render the tag.

        `attributes` are the regular (non-`asp-*`) attributes of the tag, with HTML-escaped values.
        `get_content` returns the body of the tag, and is called only if the body is needed.
        """
        result = determine_mode(self.options.present_attributes, self.mode_details)
        result.log_details(logger, self.tag_id, self.template_name)

        mode = result.mode
        if mode is None:
            # No attributes matched so we have nothing to do
            return build_script_tag(attributes, get_content())

        trace(f"RENDER script ID {self.tag_id} in mode {mode.value}")

        output: list[str] = []

        if mode == Mode.FALLBACK and not self.options.src_include:
            # No globbing to do, just build a <script /> tag to match the original one in the source file
            output.append(build_script_tag(attributes, get_content()))
        else:
            # Copy, as the `src` gets overwritten for each matched URL
            output.extend(self._build_globbed_script_tags(dict(attributes)))

        if mode == Mode.FALLBACK:
            output.append(self._build_fallback_block(attributes))

        return "".join(output)

    def _build_globbed_script_tags(self, attrs: dict[str, str]) -> list[str]:
        # Build a <script> tag for each matched src as well as the original one in the source file
        src_key = _find_src_key(attrs) or SRC_ATTRIBUTE_NAME
        static_src = unescape(attrs[src_key]) if attrs.get(src_key) else None

        srcs = self.url_builder.build_url_list(static_src, self.options.src_include, self.options.src_exclude)

        tags: list[str] = []
        for src in srcs:
            attrs[src_key] = self.html_encoder(src)
            tags.append(build_script_tag(attrs, ""))
        return tags

    def _build_fallback_block(self, attrs: Mapping[str, str]) -> str:
        fallback_srcs = self.url_builder.build_url_list(
            self.options.fallback_src,
            self.options.fallback_src_include,
            self.options.fallback_src_exclude,
        )

        return build_fallback_block(
            attrs,
            self.options.fallback_test_expression or "",
            fallback_srcs,
            html_encoder=self.html_encoder,
            js_encoder=self.js_encoder,
        )


def split_attributes(attributes: Mapping[str, Any]) -> tuple[dict[str, str], ScriptTagOptions]:
    """
    Separate the `asp-*` options from the regular HTML attributes.

    Values of the regular attributes are HTML-escaped (unless marked as safe),
    and their order is preserved. Attributes set to `None` or `False` are dropped,
    and `True` renders as e.g. `defer="defer"`.
    """
    options = ScriptTagOptions.from_attributes(attributes)
    html_attrs: dict[str, str] = {}
    for key, value in attributes.items():
        if key in ASP_ATTRIBUTE_NAMES or value is None or value is False:
            continue
        if value is True:
            value = key
        html_attrs[key] = str(conditional_escape(value))
    return html_attrs, options


def render_script_tag(
    attributes: Mapping[str, Any],
    content: str | Callable[[], str] = "",
    *,
    url_builder_factory: Callable[[], GlobbingUrlBuilder],
    html_encoder: Encoder = html_encode,
    js_encoder: Encoder = javascript_string_encode,
    tag_id: str | None = None,
    template_name: str | None = None,
) -> str:
    """
    Render a `<script>` tag with the `asp-*` options, outside of a template.

    **Example:**

    ```python
    from django_script_tags import GlobbingUrlBuilder, PathSpecFileMatcher, render_script_tag

    html = render_script_tag(
        {
            "src": "https://cdn.example.com/lib.js",
            "asp-fallback-src": "/static/lib.js",
            "asp-fallback-test": "window.Lib",
        },
        url_builder_factory=lambda: GlobbingUrlBuilder(PathSpecFileMatcher("static"), None),
    )
    ```
    """
    html_attrs, options = split_attributes(attributes)
    get_content = content if callable(content) else (lambda: content)

    renderer = ScriptTagRenderer(
        options,
        url_builder_factory=url_builder_factory,
        html_encoder=html_encoder,
        js_encoder=js_encoder,
        tag_id=tag_id,
        template_name=template_name,
    )
    return renderer.render(html_attrs, get_content)


#########################################################
# Template tags
#########################################################


def _get_request_path_base(context: Context) -> str:
    if app_settings.BASE_URL is not None:
        return app_settings.BASE_URL

    request = context.get("request")
    if request is not None:
        return request.META.get("SCRIPT_NAME", "")
    return get_script_prefix()


class ScriptNode(BaseNode):
    """
    Renders a `<script>` tag, with support for globbed `src` and for fallback scripts.

    **Globbed src** - Render one `<script>` per file that matches the glob patterns:

    ```django
    {% script asp-src-include="js/**/*.js" asp-src-exclude="js/**/*.min.js" / %}
    ```

    **Fallback** - If `asp-fallback-test` evaluates to falsy in the browser,
    load the scripts from `asp-fallback-src` (or `asp-fallback-src-include`) instead:

    ```django
    {% script
        src="https://cdn.example.com/jquery.min.js"
        asp-fallback-src="/static/jquery.min.js"
        asp-fallback-test="window.jQuery"
    / %}
    ```

    Glob patterns are comma-separated and resolved relative to `SCRIPT_TAGS["webroot"]`.

    All other params are rendered as HTML attributes, in the order they were given.
    The flags `async`, `defer` and `nomodule` are rendered after them, e.g. `{% script src="a.js" defer / %}`.
    If none of the `asp-*` params is set, the tag is rendered as it was written.
    """

    tag = "script"
    end_tag = "endscript"
    allowed_flags = ("async", "defer", "nomodule")

    def render(self, context: Context, *args: Any, **attrs: Any) -> str:
        if args:
            raise TemplateSyntaxError(
                f"Tag '{{% {self.tag} %}}' accepts only keyword arguments, got {len(args)} positional argument(s)"
            )

        # Flags render as boolean attributes, e.g. `{% script defer %}` -> `<script defer="defer">`
        for flag in self.active_flags:
            attrs.setdefault(flag, True)

        html_attrs, options = split_attributes(attrs)
        request_path_base = _get_request_path_base(context)

        def url_builder_factory() -> GlobbingUrlBuilder:
            return GlobbingUrlBuilder(
                WebrootFileMatcher(),
                get_glob_cache(),
                request_path_base,
                cache_timeout=app_settings.CACHE_TIMEOUT,
            )

        renderer = ScriptTagRenderer(
            options,
            url_builder_factory=url_builder_factory,
            tag_id=self.node_id,
            template_name=self.template_name,
        )
        output = renderer.render(html_attrs, lambda: self.nodelist.render(context))
        return mark_safe(output)
