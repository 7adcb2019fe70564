import pytest

from zkport.core.exceptions import GenerationError
from zkport.core.templating import escape, render


def test_render_substitutes_captures():
    assert render("openvm::io::read::<${type}>()", {"type": "u32"}) == "openvm::io::read::<u32>()"


def test_escaped_text_survives_rendering():
    text = 'println!("$5 {}", x)'
    assert render(escape(text) + " ${tail}", {"tail": 1}) == text + " 1"


def test_missing_placeholder_names_construct():
    with pytest.raises(GenerationError) as excinfo:
        render("${receiver}.write(${args})", {"args": "&x"}, construct_index=3)

    assert str(excinfo.value) == "Template placeholder '$receiver' has no value for construct #3"
    assert excinfo.value.construct_index == 3
    assert excinfo.value.template == "${receiver}.write(${args})"


def test_invalid_template():
    with pytest.raises(GenerationError, match="Invalid rewrite template for construct #0"):
        render("cost: $ 1", {}, construct_index=0)
