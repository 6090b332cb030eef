import functools
import inspect
from collections.abc import Callable, Iterable
from typing import Any, ClassVar, cast

from django.template import Context, Library
from django.template.base import Node, NodeList, Parser, Token
from djc_core.template_parser import ParserConfig, TagAttr, TagConfig, TagSpec, TemplateVersion

from django_script_tags.util.logger import trace_node_msg
from django_script_tags.util.misc import gen_id
from django_script_tags.util.template_tag import (
    CompiledTagFn,
    compile_tag_params_resolver,
    parse_template_tag,
)

parser_config = ParserConfig(version=TemplateVersion.v1)


# Normally, when `Node.render()` is called, it receives only a single argument `context`.
#
# For our tags, we want the `render()` method to receive also the resolved tag params,
# e.g. `{% script src="a.js" defer="defer" %}` calls `render(context, src="a.js", defer="defer")`.
#
# So we wrap the `render()` method in the metaclass. The outer `render()` (our wrapper) matches
# the `Node.render()` signature, while the inner `render()` accepts the tag params.
class NodeMeta(type):
    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        attrs: dict[str, Any],
    ) -> type["BaseNode"]:
        cls = cast("type[BaseNode]", super().__new__(mcs, name, bases, attrs))

        # Ignore the `BaseNode` class itself
        if attrs.get("__module__") == "django_script_tags.node":
            return cls

        if not hasattr(cls, "tag") or not cls.tag:
            raise ValueError(f"Node {name} must have a 'tag' attribute")

        tag_name = cls.tag

        # Remember the flags set for this tag, so that when we get to parsing templates,
        # we'll be able to pass this metadata to the parser.
        allowed_flags = attrs.get("allowed_flags")
        if allowed_flags:
            if tag_name in allowed_flags:
                raise ValueError(
                    f"Node {name}'s `tag` attribute ('{tag_name}') cannot be the same as one of its `allowed_flags`."
                )

            tag_config = TagConfig(tag=TagSpec(tag_name, set(allowed_flags)), sections=[])
            parser_config.set_tag(tag_config)

        # Skip if already wrapped
        orig_render = cls.render
        if getattr(orig_render, "_dst_wrapped", False):
            return cls

        signature = inspect.signature(orig_render)
        if len(signature.parameters) < 2:
            raise TypeError(f"`render()` method of {name} must have at least two parameters")

        # This runs when the node's template tag is being rendered.
        @functools.wraps(orig_render)
        def wrapper_render(self: "BaseNode", context: Context) -> str:
            trace_node_msg("RENDER", self.tag, self.node_id)

            if self._params_resolver is None:
                self._params_resolver = compile_tag_params_resolver(
                    params=self.params,
                    source=self.start_tag_source or "",
                    filters=self.filters,
                    tags=self.tags,
                )

            args, kwargs = self._params_resolver(context)
            # NOTE: Keep the order of kwargs as they were written in the template.
            # For `{% script %}` this is the order of the rendered HTML attributes.
            output = orig_render(self, context, *args, **dict(kwargs))

            trace_node_msg("RENDER", self.tag, self.node_id, msg="...Done!")
            return output

        cls.render = wrapper_render  # type: ignore[assignment]
        cls.render._dst_wrapped = True  # type: ignore[attr-defined]

        return cls


class BaseNode(Node, metaclass=NodeMeta):
    """
    Node class for the template tags of django-script-tags.

    Subclasses declare how the tag is parsed with `tag`, `end_tag` and `allowed_flags`,
    and implement the tag in `render()`:

    ```python
    class MyNode(BaseNode):
        tag = "mynode"
        end_tag = "endmynode"

        def render(self, context: Context, **kwargs: Any) -> str:
            return self.nodelist.render(context)
    ```

    The tag can be written as a block (`{% mynode %}...{% endmynode %}`),
    or self-closing (`{% mynode / %}`).
    """

    tag: ClassVar[str]
    """The tag name, e.g. `"script"` for `{% script %}`."""

    end_tag: ClassVar[str | None] = None
    """The end tag name, e.g. `"endscript"`. If not set, the tag has no body."""

    allowed_flags: ClassVar[Iterable[str] | None] = None
    """The list of all *possible* flags for this tag, e.g. `["defer"]` for `{% mytag defer %}`."""

    def render(self, context: Context, *_args: Any, **_kwargs: Any) -> str:
        """
        Render the node. This method is meant to be overridden by subclasses.

        The `render()` method MUST accept a `context` argument. Any arguments after that
        are the tag's input parameters.
        """
        return self.nodelist.render(context)

    def __init__(
        self,
        params: list[TagAttr],
        filters: dict[str, Callable[[Any, Any], Any]],
        tags: dict[str, Callable[[Any, Any], Any]],
        flags: dict[str, bool] | None = None,
        nodelist: NodeList | None = None,
        node_id: str | None = None,
        template_name: str | None = None,
        start_tag_source: str | None = None,
    ) -> None:
        self.params = params
        self._params_resolver: CompiledTagFn | None = None
        self.filters = filters
        self.tags = tags
        self.flags = flags or {flag: False for flag in self.allowed_flags or []}
        self.nodelist = nodelist or NodeList()
        self.node_id = node_id or gen_id()
        self.template_name = template_name
        self.start_tag_source = start_tag_source

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.node_id}. Flags: {self.active_flags}>"

    @property
    def active_flags(self) -> list[str]:
        """Flags that were set for this specific instance as a list of strings."""
        return [flag for flag, value in self.flags.items() if value]

    @classmethod
    def parse(cls, parser: Parser, token: Token, **kwargs: Any) -> "BaseNode":
        """
        This function is what is passed to Django's `Library.tag()` when registering the tag.
        """
        tag_id = gen_id()
        tag = parse_template_tag(cls.tag, cls.end_tag, parser_config, parser, token)

        trace_node_msg("PARSE", cls.tag, tag_id)

        body = tag.parse_body()
        node = cls(
            nodelist=body,
            node_id=tag_id,
            params=tag.params,
            start_tag_source=tag.start_tag_source,
            filters=parser.filters,
            tags=parser.tags,
            flags=tag.flags,
            template_name=parser.origin.name if parser.origin else None,
            **kwargs,
        )

        trace_node_msg("PARSE", cls.tag, tag_id, "...Done!")
        return node

    @classmethod
    def register(cls, library: Library) -> None:
        """
        A convenience method for registering the tag with the given library.

        ```python
        ScriptNode.register(library)
        ```
        """
        library.tag(cls.tag, cls.parse)
