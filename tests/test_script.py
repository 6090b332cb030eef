import logging
from unittest.mock import Mock

from django_script_tags.script import (
    ScriptTagOptions,
    ScriptTagRenderer,
    build_fallback_block,
    build_script_tag,
    render_script_tag,
    split_attributes,
)

from .testutils import setup_test_config

setup_test_config()


class FakeUrlBuilder:
    """Resolves include patterns from a fixed dict instead of the file system."""

    def __init__(self, matches: dict[str, list[str]] | None = None) -> None:
        self.matches = matches or {}
        self.calls: list[tuple] = []

    def build_url_list(self, static_url, include_pattern, exclude_pattern):
        self.calls.append((static_url, include_pattern, exclude_pattern))
        urls = [static_url] if static_url else []
        if include_pattern:
            urls += self.matches.get(include_pattern, [])
        return list(dict.fromkeys(urls))


def _content(text: str = "") -> Mock:
    return Mock(return_value=text)


class TestBuildScriptTag:
    def test_attributes_in_order(self):
        tag = build_script_tag({"type": "module", "src": "a.js", "defer": "defer"}, "")
        assert tag == '<script type="module" src="a.js" defer="defer"></script>'

    def test_content(self):
        assert build_script_tag({}, "console.log(1);") == "<script>console.log(1);</script>"

    def test_does_not_escape(self):
        tag = build_script_tag({"data-x": "&lt;b&gt;"}, "if (a < b) {}")
        assert tag == '<script data-x="&lt;b&gt;">if (a < b) {}</script>'


class TestBuildFallbackBlock:
    def test_single_src(self):
        block = build_fallback_block({"src": "lib.js"}, "window.Lib", ["lib.min.js"])
        assert block == r'<script>(window.Lib||document.write("<script src=\"lib.min.js\"><\/script>"));</script>'

    def test_no_srcs(self):
        assert build_fallback_block({"src": "lib.js"}, "window.Lib", []) == ""

    def test_multiple_srcs_and_missing_src_attribute(self):
        block = build_fallback_block({"type": "text/javascript"}, "window.X", ["/a.js", "/b.js"])
        assert block == (
            r'<script>(window.X||document.write("'
            r'<script src=\"/a.js\" type=\"text/javascript\"><\/script>'
            r'<script src=\"/b.js\" type=\"text/javascript\"><\/script>'
            r'"));</script>'
        )

    def test_src_keeps_position_and_case(self):
        block = build_fallback_block({"type": "module", "SRC": "x.js", "defer": "defer"}, "window.X", ["f.js"])
        assert r'<script type=\"module\" SRC=\"f.js\" defer=\"defer\"><\/script>' in block

    def test_js_encoder_applies_to_other_attributes(self):
        block = build_fallback_block(
            {"src": "x.js", "type": "module"},
            "window.X",
            ["f.js"],
            js_encoder=lambda value: value.upper(),
        )
        assert r'<script src=\"f.js\" TYPE=\"MODULE\"><\/script>' in block

    def test_escapes_for_javascript_string(self):
        block = build_fallback_block({"src": "x.js", "data-x": 'a"b'}, "window.X", ["f.js"])
        assert r'data\u002Dx=\"a\u0022b\"' in block

    def test_fallback_src_is_html_encoded(self):
        block = build_fallback_block({}, "window.X", ["/a.js?x=1&y=2"])
        assert r'<script src=\"/a.js?x=1&amp;y=2\"><\/script>' in block

    def test_test_expression_is_not_escaped(self):
        block = build_fallback_block({}, "window.jQuery && window.jQuery.fn", ["/jq.js"])
        assert block.startswith("<script>(window.jQuery && window.jQuery.fn||document.write(")


class TestScriptTagRenderer:
    def _render(self, attrs, options, content="", matches=None):
        url_builder = FakeUrlBuilder(matches)
        factory = Mock(return_value=url_builder)
        get_content = _content(content)
        renderer = ScriptTagRenderer(options, url_builder_factory=factory)
        return renderer.render(attrs, get_content), factory, get_content, url_builder

    def test_no_options_renders_tag_unchanged(self):
        output, factory, _, _ = self._render({"src": "a.js"}, ScriptTagOptions(), "body")
        assert output == '<script src="a.js">body</script>'
        factory.assert_not_called()

    def test_globbed_src(self):
        output, _, get_content, _ = self._render(
            {},
            ScriptTagOptions(src_include="js/*.js"),
            "should not be repeated",
            matches={"js/*.js": ["js/a.js", "js/b.js"]},
        )
        assert output == '<script src="js/a.js"></script><script src="js/b.js"></script>'
        get_content.assert_not_called()

    def test_globbed_src_keeps_static_src_and_attribute_order(self):
        output, _, _, url_builder = self._render(
            {"type": "module", "src": "/main.js", "defer": "defer"},
            ScriptTagOptions(src_include="js/*.js", src_exclude="js/*.min.js"),
            matches={"js/*.js": ["/js/a.js", "/main.js"]},
        )
        assert output == (
            '<script type="module" src="/main.js" defer="defer"></script>'
            '<script type="module" src="/js/a.js" defer="defer"></script>'
        )
        assert url_builder.calls == [("/main.js", "js/*.js", "js/*.min.js")]

    def test_globbed_src_does_not_double_encode_static_src(self):
        output, _, _, url_builder = self._render(
            {"src": "a.js?x=1&amp;y=2"},
            ScriptTagOptions(src_include="js/*.js"),
        )
        assert output == '<script src="a.js?x=1&amp;y=2"></script>'
        assert url_builder.calls[0][0] == "a.js?x=1&y=2"

    def test_fallback_static(self):
        output, _, _, _ = self._render(
            {"src": "lib.js"},
            ScriptTagOptions(fallback_src="lib.min.js", fallback_test_expression="window.Lib"),
        )
        assert output == (
            '<script src="lib.js"></script>'
            r'<script>(window.Lib||document.write("<script src=\"lib.min.js\"><\/script>"));</script>'
        )

    def test_fallback_keeps_body(self):
        output, _, get_content, _ = self._render(
            {"src": "lib.js"},
            ScriptTagOptions(fallback_src="lib.min.js", fallback_test_expression="window.Lib"),
            "/* body */",
        )
        assert output.startswith('<script src="lib.js">/* body */</script><script>(window.Lib||')
        get_content.assert_called_once()

    def test_fallback_globbed(self):
        output, _, _, url_builder = self._render(
            {"src": "https://cdn.example.com/lib.js"},
            ScriptTagOptions(
                fallback_src_include="lib/*.js",
                fallback_src_exclude="lib/*.min.js",
                fallback_test_expression="window.Lib",
            ),
            matches={"lib/*.js": ["/lib/a.js", "/lib/b.js"]},
        )
        assert output == (
            '<script src="https://cdn.example.com/lib.js"></script>'
            r'<script>(window.Lib||document.write("'
            r'<script src=\"/lib/a.js\"><\/script><script src=\"/lib/b.js\"><\/script>'
            r'"));</script>'
        )
        assert url_builder.calls == [(None, "lib/*.js", "lib/*.min.js")]

    def test_fallback_with_no_matches_omits_block(self):
        output, _, _, _ = self._render(
            {"src": "lib.js"},
            ScriptTagOptions(fallback_src_include="nope/*.js", fallback_test_expression="window.Lib"),
        )
        assert output == '<script src="lib.js"></script>'

    def test_fallback_with_globbed_src(self):
        output, _, get_content, _ = self._render(
            {"src": "/cdn.js"},
            ScriptTagOptions(src_include="js/*.js", fallback_src="/local.js", fallback_test_expression="window.X"),
            "body",
            matches={"js/*.js": ["/js/a.js"]},
        )
        assert output == (
            '<script src="/cdn.js"></script>'
            '<script src="/js/a.js"></script>'
            r'<script>(window.X||document.write("<script src=\"/local.js\"><\/script>"));</script>'
        )
        get_content.assert_not_called()

    def test_fallback_src_first_when_tag_has_no_src(self):
        output, _, _, _ = self._render(
            {"type": "module"},
            ScriptTagOptions(src_include="js/*.js", fallback_src="/f.js", fallback_test_expression="window.X"),
            matches={"js/*.js": ["/js/a.js"]},
        )
        assert output == (
            '<script type="module" src="/js/a.js"></script>'
            r'<script>(window.X||document.write("<script src=\"/f.js\" type=\"module\"><\/script>"));</script>'
        )

    def test_url_builder_created_once(self):
        output, factory, _, url_builder = self._render(
            {"src": "/cdn.js"},
            ScriptTagOptions(src_include="js/*.js", fallback_src="/local.js", fallback_test_expression="window.X"),
        )
        factory.assert_called_once()
        assert len(url_builder.calls) == 2

    def test_partial_options_pass_through(self, caplog):
        with caplog.at_level(logging.WARNING, logger="django_script_tags"):
            output, factory, _, _ = self._render(
                {"src": "a.js"},
                ScriptTagOptions(fallback_src="b.js"),
                "body",
            )

        assert output == '<script src="a.js">body</script>'
        factory.assert_not_called()
        assert "asp-fallback-test" in caplog.text


class TestSplitAttributes:
    def test_splits_and_escapes(self):
        html_attrs, options = split_attributes(
            {
                "src": "a.js?x=1&y=2",
                "asp-fallback-src": "b.js",
                "data-x": "<1>",
                "asp-fallback-test": "window.B && 1",
            }
        )
        assert html_attrs == {"src": "a.js?x=1&amp;y=2", "data-x": "&lt;1&gt;"}
        assert options == ScriptTagOptions(fallback_src="b.js", fallback_test_expression="window.B && 1")

    def test_boolean_and_none_values(self):
        html_attrs, _ = split_attributes({"src": "a.js", "defer": True, "async": False, "nonce": None})
        assert html_attrs == {"src": "a.js", "defer": "defer"}


class TestRenderScriptTag:
    def test_fallback(self):
        url_builder = FakeUrlBuilder()
        output = render_script_tag(
            {
                "src": "https://cdn.example.com/lib.js",
                "crossorigin": "anonymous",
                "asp-fallback-src": "/static/lib.js",
                "asp-fallback-test": "window.Lib",
            },
            url_builder_factory=lambda: url_builder,
        )
        assert output == (
            '<script src="https://cdn.example.com/lib.js" crossorigin="anonymous"></script>'
            r'<script>(window.Lib||document.write("'
            r'<script src=\"/static/lib.js\" crossorigin=\"anonymous\"><\/script>'
            r'"));</script>'
        )

    def test_content_callable(self):
        output = render_script_tag(
            {"type": "module"},
            lambda: "import './a.js';",
            url_builder_factory=FakeUrlBuilder,
        )
        assert output == "<script type=\"module\">import './a.js';</script>"
