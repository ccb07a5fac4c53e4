"""Tests for system prompt assembly and context shaping."""

from genieflow.engine.prompt_builder import (
    ADDITIONAL_CONTEXT_HEADER,
    REFERENCE_HEADER,
    PromptOptions,
    apply_context_mode,
    build_prompt,
    describe_node,
    describe_output,
    with_system_message,
    with_user_message,
)
from genieflow.models.context import (
    ConversationState,
    ExternalContent,
    Message,
    create_initial_context,
)
from genieflow.models.outputs import ColorOutput, PixelArtOutput
from genieflow.models.pipeline import ContextMode, PipelineNode


def _node(node_id, kind, config=None):
    return PipelineNode.model_validate({"id": node_id, "kind": kind, "config": config})


class TestBuildPrompt:
    def test_base_only(self):
        assert build_prompt("Base.", [], {}, {}, {}) == "Base."

    def test_no_empty_sections(self):
        nodes = [_node("u1", "user_input"), _node("l1", "url_loader", {"url": "https://x.dev"})]
        prompt = build_prompt("Base.", nodes, {}, {}, {"u1": "   "})
        assert REFERENCE_HEADER not in prompt
        assert ADDITIONAL_CONTEXT_HEADER not in prompt
        assert prompt == "Base."

    def test_section_order(self):
        nodes = [
            _node("t1", "text_input"),
            _node("c1", "color_display", {"name": "mood"}),
            _node("l1", "url_loader", {"url": "https://x.dev"}),
        ]
        prompt = build_prompt(
            "Base.",
            nodes,
            {},
            {"l1": ExternalContent(url="https://x.dev", content="Doc body")},
            {"t1": "The user is sad."},
            PromptOptions(additional_prompt="You are Luna."),
        )
        order = [
            prompt.index("Base."),
            prompt.index("You are Luna."),
            prompt.index("display_mood_color"),
            prompt.index(REFERENCE_HEADER),
            prompt.index("### Source: https://x.dev"),
            prompt.index("Doc body"),
            prompt.index(ADDITIONAL_CONTEXT_HEADER),
            prompt.index("- The user is sad."),
        ]
        assert order == sorted(order)

    def test_failed_fetch_is_not_referenced(self):
        nodes = [_node("l1", "url_loader", {"url": "https://x.dev"})]
        prompt = build_prompt("Base.", nodes, {}, {"l1": ExternalContent(url="https://x.dev", error="404")}, {})
        assert REFERENCE_HEADER not in prompt

    def test_user_inputs_of_other_nodes_ignored(self):
        nodes = [_node("u1", "user_input")]
        prompt = build_prompt("Base.", nodes, {}, {}, {"u1": "mine", "u2": "not mine"})
        assert "- mine" in prompt
        assert "not mine" not in prompt

    def test_genie_conversation_shared(self):
        genie = _node("g1", "genie", {"name": "Luna", "system_prompt": "A moon spirit."})
        conversations = {"g1": ConversationState().appended("Who are you?", "I am Luna.")}
        prompt = build_prompt("Base.", [genie], conversations, {}, {})
        assert "Genie Context (name: Luna)" in prompt
        assert "[Backstory: A moon spirit.]" in prompt
        assert "User: Who are you?" in prompt
        assert "Luna: I am Luna." in prompt

    def test_genie_conversation_hidden_when_excluded(self):
        genie = _node("g1", "genie", {"name": "Luna"})
        conversations = {"g1": ConversationState().appended("Who are you?", "I am Luna.")}
        prompt = build_prompt(
            "Base.", [genie], conversations, {}, {}, PromptOptions(include_conversations=False)
        )
        assert "I am Luna." not in prompt
        assert "send_message_to_Luna" in prompt

    def test_describe_node(self):
        assert describe_node(_node("u1", "user_input")) == ""
        assert "display_gauge" in describe_node(_node("g1", "gauge_display"))

    def test_describe_node_lists_arguments_and_guidelines(self):
        block = describe_node(_node("c1", "color_display", {"name": "mood"}))
        assert block.startswith('Available output block:\n- "mood": c1, tool: display_mood_color')
        assert "you MUST call the display_mood_color tool with:" in block
        assert "- hex: Hex color code" in block
        assert "- name: (optional) Human-readable color name" in block
        assert "Color guidelines:" in block

    def test_describe_node_guidance_per_kind(self):
        assert "- storm: Weather, turmoil" in describe_node(_node("i1", "icon_display"))
        assert "between 32x32 and 128x128" in describe_node(_node("p1", "pixel_art_display"))
        emoji = describe_node(_node("e1", "emoji_display", {"name": "party"}))
        assert "tool: display_party_emoji" in emoji
        assert "Single emoji per call" in emoji

    def test_pixel_art_output_summary(self):
        node = _node("p1", "pixel_art_display", {"name": "cat"})
        art = PixelArtOutput(
            colors={"k": "#000000", ".": "transparent"},
            grid=["k" * 40] * 17 + ["." * 40] * 17,
            explanation="A black cat",
        )
        summary = describe_output(node, art)
        lines = summary.split("\n")
        assert lines[0] == "### cat (40x34 pixels)"
        assert lines[1] == "Description: A black cat"
        assert '- "k": #000000' in lines
        assert "Pixel grid (34 rows):" in lines
        assert lines[-1] == "... (24 more rows)"
        assert describe_output(node, None) == ""
        assert describe_output(node, ColorOutput(hex="#000000")) == ""

    def test_output_summary_follows_node_block(self):
        nodes = [_node("p1", "pixel_art_display")]
        art = PixelArtOutput(colors={"a": "#ffffff"}, grid=["a" * 32] * 32)
        prompt = build_prompt("Base.", nodes, {}, {}, {}, outputs={"p1": art})
        assert prompt.index("generate_pixel_art") < prompt.index("### pixel art display (32x32 pixels)")
        assert "more rows" in prompt
        assert "### pixel art display" not in build_prompt("Base.", nodes, {}, {}, {})


class TestContextShaping:
    def test_single_system_message(self):
        context = create_initial_context("p")
        context = with_system_message(context, "one")
        context = with_user_message(context, "hi")
        context = with_system_message(context, "two")
        assert [m.role for m in context.messages] == ["system", "user"]
        assert context.system_message.content == "two"

    def test_empty_user_message_skipped(self):
        context = create_initial_context("p")
        assert with_user_message(context, "") is context

    def test_continue_keeps_history(self):
        messages = [
            Message(role="system", content="s"),
            Message(role="user", content="a"),
            Message(role="assistant", content="b"),
            Message(role="user", content="c"),
        ]
        assert [m.content for m in apply_context_mode(messages, ContextMode.CONTINUE)] == ["a", "b", "c"]

    def test_fresh_keeps_last_user_message(self):
        messages = [
            Message(role="user", content="a"),
            Message(role="assistant", content="b"),
            Message(role="user", content="c"),
            Message(role="assistant", content="d"),
        ]
        assert [m.content for m in apply_context_mode(messages, ContextMode.FRESH)] == ["c"]

    def test_fresh_without_user_message(self):
        assert apply_context_mode([Message(role="assistant", content="x")], ContextMode.FRESH) == []
