"""
This file is for logic that focuses on transforming the AST of template tags
(as parsed by `djc_core.template_parser`) into a form that can be used by the Nodes.
"""

from collections.abc import Callable, Iterable, Mapping
from typing import Any, NamedTuple, Protocol

from django.template import NodeList, Variable, VariableDoesNotExist
from django.template.base import Lexer, Parser, Token, VariableNode
from django.template.exceptions import TemplateSyntaxError
from djc_core.safe_eval import safe_eval
from djc_core.template_parser import GenericTag, ParserConfig, TagAttr, compile_tag, parse_tag


# Data obj to give meaning to the parsed tag fields
class ParsedTag(NamedTuple):
    start_tag_source: str
    flags: dict[str, bool]
    params: list[TagAttr]
    parse_body: Callable[[], NodeList]


def parse_template_tag(
    tag: str,
    end_tag: str | None,
    tag_parser_config: ParserConfig,
    django_parser: Parser,
    token: Token,
) -> ParsedTag:
    # For better error messages, we add the enclosing `{% %}` to the tag contents.
    # So if parser encounters an error, it will include the enclosing `{% %}` in the error message.
    start_tag_source = "{% " + token.contents + " %}"
    parsed_tag_info = parse_tag(start_tag_source, tag_parser_config)

    # Sanity checks
    parsed_tag_name = parsed_tag_info.meta.name.content
    if parsed_tag_name != tag:
        raise TemplateSyntaxError(f"Tag parser received tag '{parsed_tag_name}', expected '{tag}'")

    # A tag has a body, unless:
    # 1. It's self-closing, e.g. `{% script src="a.js" / %}`
    # 2. Or the Node has no end tag at all.
    is_inline = isinstance(parsed_tag_info, GenericTag) and parsed_tag_info.is_self_closing

    tag_config = tag_parser_config.get_tag(tag)
    tag_allowed_flags = (tag_config and tag_config.get_flags()) or set()
    attrs = parsed_tag_info.attrs if isinstance(parsed_tag_info, GenericTag) else ()
    remaining_attrs, flags = _extract_flags(attrs, tag_allowed_flags)

    def _parse_tag_body(parser: Parser, end_tag: str, inline: bool) -> NodeList:
        if inline:
            return NodeList()
        body = parser.parse(parse_until=[end_tag])
        parser.delete_first_token()
        return body

    return ParsedTag(
        params=remaining_attrs,
        start_tag_source=start_tag_source,
        flags=flags,
        # NOTE: We defer parsing of the body, so that the PARSE trace for this tag
        # is logged before the traces of the tags nested in the body.
        parse_body=lambda: _parse_tag_body(django_parser, end_tag, is_inline) if end_tag else NodeList(),
    )


def _extract_flags(
    attrs: Iterable[TagAttr],
    allowed_flags: set[str],
) -> tuple[list[TagAttr], dict[str, bool]]:
    # The parser marks as flags only the bare words listed in `allowed_flags`, and rejects repeated ones.
    attrs = list(attrs)
    params = [attr for attr in attrs if not attr.is_flag]
    used_flags = {attr.value.token.content for attr in attrs if attr.is_flag}
    return params, {flag: flag in used_flags for flag in sorted(allowed_flags)}


# Strings that contain template tags, e.g. `asp-fallback-src="{{ cdn }}/lib.js"`,
# are rendered as small templates.
def resolve_template_string(
    context: Mapping[str, Any],
    _source: str,
    _token: tuple[int, int],
    filters: Mapping[str, Callable],
    tags: Mapping[str, Callable],
    expr: str,
) -> Any:
    expr_parser = Parser(tokens=Lexer(expr).tokenize())
    # Copy, so that `{% load %}` inside the expression doesn't spill outside
    expr_parser.filters = {**filters}
    expr_parser.tags = {**tags}
    nodelist = expr_parser.parse()

    # A lone `{{ var }}` gives the value as is, e.g. a list or a number
    if len(nodelist) == 1 and isinstance(nodelist[0], VariableNode):
        return nodelist[0].filter_expression.resolve(context)
    return nodelist.render(context)


def resolve_filter(
    _context: Mapping[str, Any],
    _source: str,
    _token: tuple[int, int],
    filters: Mapping[str, Callable],
    _tags: Mapping[str, Callable],
    name: str,
    value: Any,
    arg: Any,
) -> Any:
    if name not in filters:
        raise TemplateSyntaxError(f"Invalid filter: '{name}'")

    filter_func = filters[name]
    if arg is None:
        return filter_func(value)
    else:
        return filter_func(value, arg)


def resolve_variable(
    context: Mapping[str, Any],
    _source: str,
    _token: tuple[int, int],
    _filters: Mapping[str, Callable],
    _tags: Mapping[str, Callable],
    var: str,
) -> Any:
    try:
        return Variable(var).resolve(context)
    except VariableDoesNotExist:
        return ""


def resolve_translation(
    context: Mapping[str, Any],
    _source: str,
    _token: tuple[int, int],
    _filters: Mapping[str, Callable],
    _tags: Mapping[str, Callable],
    text: str,
) -> Any:
    # The compiler gives us the variable stripped of `_(")` and `"),
    # so we put it back for Django's Variable class to interpret it as a translation.
    translation_var = "_('" + text + "')"
    return Variable(translation_var).resolve(context)


python_expression_cache: dict[str, Callable[[Mapping[str, Any]], Any]] = {}


def resolve_python_expression(
    context: Mapping[str, Any],
    _source: str,
    _token: tuple[int, int],
    _filters: Mapping[str, Callable],
    _tags: Mapping[str, Callable],
    code: str,
) -> Any:
    if code not in python_expression_cache:
        python_expression_cache[code] = safe_eval(code)

    expr_resolver = python_expression_cache[code]
    return expr_resolver(context)


class CompiledTagFn(Protocol):
    def __call__(self, context: Mapping[str, Any]) -> tuple[list[Any], list[tuple[str, Any]]]: ...


def compile_tag_params_resolver(
    params: list[TagAttr],
    source: str,
    filters: dict[str, Callable],
    tags: dict[str, Callable],
) -> CompiledTagFn:
    compiled_tag = compile_tag(
        tag_or_attrs=params,
        source=source,
        filters=filters,
        tags=tags,
        template_string=resolve_template_string,
        expr=resolve_python_expression,
        variable=resolve_variable,
        translation=resolve_translation,
        filter=resolve_filter,
    )

    def resolver(context: Mapping[str, Any]) -> tuple[list[Any], list[tuple[str, Any]]]:
        args, kwargs = compiled_tag(context)
        _check_duplicate_kwargs(kwargs)
        return args, kwargs

    return resolver


def _check_duplicate_kwargs(kwargs: list[tuple[str, Any]]) -> None:
    seen: set[str] = set()
    for key, _value in kwargs:
        if key in seen:
            raise TemplateSyntaxError(f"Received argument '{key}' multiple times")
        seen.add(key)
