import pytest

from helixctl.errors import ConfigurationError, TemplateRenderError
from helixctl.modules.template import escape, load_template, quote, render_string


def test_quote_and_escape():
    assert quote('say "hi"') == '"say \\"hi\\""'
    assert escape('a\nb') == 'a\\nb'
    assert quote(6443) == '"6443"'


def test_render_string_with_filters():
    out = render_string("name: {{ name | quote }}\n{% for x in items %}- {{ x }}\n{% endfor %}",
                        {"name": "etcd", "items": [1, 2]})
    assert out == 'name: "etcd"\n- 1\n- 2\n'


def test_undefined_variable_is_an_error():
    with pytest.raises(TemplateRenderError, match="Missing template variable"):
        render_string("{{ missing }}", {})


def test_syntax_error():
    with pytest.raises(TemplateRenderError):
        render_string("{% if %}", {})


def test_load_bundled_template():
    assert "--initial-cluster-state" in load_template("etcd.yaml.j2")


def test_load_missing_template():
    with pytest.raises(TemplateRenderError) as excinfo:
        load_template("no-such-template.j2")
    assert isinstance(excinfo.value, ConfigurationError)
