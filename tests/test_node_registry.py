"""Tests for node naming and the registry."""
from __future__ import annotations

from replay_analyzer.replay.node_registry import NodeDescriptor, NodeRegistry, find_title, semantic_name
from replay_analyzer.replay.privacy import REDACTED, redact

from replay_builders import element, signup_page


def test_register_tree_and_describe():
    registry = NodeRegistry()
    added = registry.register_tree(signup_page())
    # html, head, title, body and six body elements
    assert added == 10
    assert registry.describe(10) == '"Create account" button'
    assert registry.describe(20) == '"Work email" email field'
    assert registry.describe(30) == "link to pricing"
    assert registry.describe(40) == "div"
    assert registry.describe(50) == '"password" password field'
    assert registry.describe(60) == "#intro video"


def test_unknown_node_falls_back_to_id():
    registry = NodeRegistry()
    assert registry.describe(999) == "element #999"
    assert registry.describe(999, fallback="input") == "input #999"


def test_mutation_adds_register_new_nodes():
    registry = NodeRegistry()
    registry.register_tree(signup_page())
    registry.register_mutation([{"parentId": 6, "node": element(70, "button", {"aria-label": "Close dialog"})}])
    assert 70 in registry
    assert registry.describe(70) == '"Close dialog" button'
    # earlier entries survive
    assert registry.describe(10) == '"Create account" button'


def test_naming_priorities():
    assert semantic_name(NodeDescriptor(1, "A", text_content="Pricing")) == '"Pricing" link'
    assert semantic_name(NodeDescriptor(1, "textarea", placeholder="Tell us more")) == '"Tell us more" text area'
    assert semantic_name(NodeDescriptor(1, "select", name="country")) == '"country" dropdown'
    assert semantic_name(NodeDescriptor(1, "img", src="https://cdn.example.com/img/logo.png?v=2")) == "image (logo.png)"
    assert semantic_name(NodeDescriptor(1, "span", text_content="Step 2 of 3")) == '"Step 2 of 3"'
    assert semantic_name(NodeDescriptor(1, "div", id="main-nav")) == "#main-nav div"
    assert semantic_name(NodeDescriptor(1, "div", id=":r3:", class_name="sidebar x")) == ".sidebar div"
    assert semantic_name(NodeDescriptor(1, "section")) == "section"
    assert semantic_name(NodeDescriptor(1, "input")) == "text input field"


def test_names_are_redacted():
    info = NodeDescriptor(1, "button", text_content="Email jane.doe@example.com")
    assert semantic_name(info) == f'"Email {REDACTED}" button'
    assert redact("card 4111 1111 1111 1111 on file") == f"card {REDACTED} on file"
    assert redact("ref 12345678901234567890 ok") == f"ref {REDACTED} ok"


def test_find_title():
    assert find_title(signup_page()) == "Sign up"
    assert find_title({"type": 0, "id": 1, "childNodes": []}) == ""
    assert find_title(None) == ""
