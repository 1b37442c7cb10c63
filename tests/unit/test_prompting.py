"""
Tests for seed dialogue parsing, persona framing and history windowing.
"""

from types import SimpleNamespace

import pytest

from companion_app.services.session import select_history_window
from companion_app.utils.prompting import build_persona_prompt, parse_seed_turns
from tests.conftest import SEED, WordTokenizer


class TestParseSeedTurns:

    def test_parses_alternating_turns(self):
        turns = parse_seed_turns(SEED)

        assert [t.role for t in turns] == ["user", "assistant", "user", "assistant"]
        assert turns[0].content == "Hello Ada, what are you working on today?"
        assert turns[1].content.startswith("Notes on Mr. Babbage's Analytical Engine.")

    def test_speaker_name_with_spaces_and_stage_directions(self):
        seed = (
            "Human: Hey Tony, how's life treating you today?\n"
            "Tony Stark: smirks Oh, you know, just another day in the world of cutting-edge tech."
        )
        turns = parse_seed_turns(seed)

        assert [t.role for t in turns] == ["user", "assistant"]
        assert turns[1].content.startswith("smirks Oh, you know")

    def test_unlabelled_lines_continue_previous_turn(self):
        seed = "Human: Tell me a story.\nAda: Once upon a time\nthere was an engine.\n\nHuman: And then?"
        turns = parse_seed_turns(seed)

        assert turns[1].content == "Once upon a time\nthere was an engine."
        assert turns[2].role == "user"

    def test_consecutive_same_role_turns_are_merged(self):
        turns = parse_seed_turns("User: one\nHuman: two\nAda: three")

        assert [t.role for t in turns] == ["user", "assistant"]
        assert turns[0].content == "one\ntwo"

    def test_long_prefix_is_prose_not_a_speaker(self):
        seed = "Human: Why numbers?\nAda: Because\nWell, the thing about engines is this: they never tire."
        turns = parse_seed_turns(seed)

        assert len(turns) == 2
        assert turns[1].content.endswith("they never tire.")

    def test_preamble_before_first_speaker_is_dropped(self):
        turns = parse_seed_turns("A short chat between friends\nHuman: hi\nAda: hello")
        assert [t.content for t in turns] == ["hi", "hello"]

    @pytest.mark.parametrize("seed", [
        "Ada is a mathematician who loves poetry and engines.",
        "Ada: I only talk to myself.\nAda: Always.",
        "",
    ])
    def test_non_dialogue_yields_no_turns(self, seed):
        assert parse_seed_turns(seed) == []


class TestBuildPersonaPrompt:

    def test_frames_instructions_with_name(self):
        prompt = build_persona_prompt("Ada", "Be curious.")

        assert "You are Ada." in prompt
        assert "DO NOT use Ada: prefix." in prompt
        assert prompt.endswith("Be curious.")

    def test_appends_example_dialogue_when_given(self):
        prompt = build_persona_prompt("Ada", "Be curious.", example_dialogue="Ada talks about looms.")
        assert prompt.endswith("Example conversation:\nAda talks about looms.")


def _messages(*contents):
    roles = ["user", "assistant"]
    return [SimpleNamespace(role=roles[i % 2], content=c) for i, c in enumerate(contents)]


class TestSelectHistoryWindow:

    def test_keeps_last_turns(self):
        messages = _messages("a", "b", "c", "d", "e")
        window = select_history_window(messages, max_turns=2, token_budget=100, count_tokens=WordTokenizer().count_tokens)

        assert [t.content for t in window] == ["c", "d", "e"]

    def test_window_never_starts_with_a_reply(self):
        messages = _messages("a", "b", "c", "d", "e", "f", "g")
        window = select_history_window(messages, max_turns=1, token_budget=100, count_tokens=WordTokenizer().count_tokens)

        assert [(t.role, t.content) for t in window] == [("user", "g")]

    def test_drops_oldest_whole_turns_to_fit_budget(self):
        messages = _messages("one two", "three four", "five six", "seven eight", "nine")
        window = select_history_window(messages, max_turns=10, token_budget=5, count_tokens=WordTokenizer().count_tokens)

        assert [t.content for t in window] == ["five six", "seven eight", "nine"]
        assert window[0].role == "user"

    def test_newest_message_survives_any_budget(self):
        messages = _messages("older", "a very long latest message")
        window = select_history_window(messages, max_turns=10, token_budget=-50, count_tokens=WordTokenizer().count_tokens)

        assert [t.content for t in window] == ["a very long latest message"]

    def test_empty_history(self):
        assert select_history_window([], max_turns=10, token_budget=100, count_tokens=len) == []
