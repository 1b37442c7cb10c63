import re
from typing import List, Optional

from companion_app.schemas.chat import ChatTurn

HUMAN_LABELS = {"human", "user"}

# "Label: text" where the label looks like a speaker name rather than prose
_SPEAKER_LINE = re.compile(r"^(?P<label>[^:\n.!?]{1,40}):\s*(?P<text>.*)$")
_MAX_LABEL_WORDS = 4


def parse_seed_turns(seed: str) -> List[ChatTurn]:
    """
    Splits example dialogue into alternating user/assistant turns.

    ``Human:``/``User:`` lines are user turns; any other speaker label is the
    companion. Unlabelled lines continue the previous turn and consecutive turns
    of the same role are merged. Returns an empty list when the text has no
    human turn at all, i.e. it is not a dialogue.
    """
    turns: List[ChatTurn] = []
    saw_human = False

    for raw_line in seed.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        match = _SPEAKER_LINE.match(line)
        label = match.group("label").strip() if match else ""
        if match and label and len(label.split()) <= _MAX_LABEL_WORDS:
            role = "user" if label.lower() in HUMAN_LABELS else "assistant"
            saw_human = saw_human or role == "user"
            text = match.group("text").strip()
            if turns and turns[-1].role == role:
                turns[-1] = ChatTurn(role=role, content=f"{turns[-1].content}\n{text}".strip())
            else:
                turns.append(ChatTurn(role=role, content=text))
        elif turns:
            turns[-1] = ChatTurn(role=turns[-1].role, content=f"{turns[-1].content}\n{line}".strip())
        # text before the first speaker label is preamble and is dropped

    if not saw_human:
        return []
    return [turn for turn in turns if turn.content]


def build_persona_prompt(name: str, instructions: str, example_dialogue: Optional[str] = None) -> str:
    """System directive for the model: who to be, how to answer, then the author's instructions."""
    parts = [
        f"ONLY generate plain sentences without prefix of who is speaking. DO NOT use {name}: prefix.",
        f"You are {name}. Stay in character as {name} and never mention that you are an AI model.",
        instructions.strip(),
    ]
    if example_dialogue and example_dialogue.strip():
        parts.append(f"Example conversation:\n{example_dialogue.strip()}")
    return "\n\n".join(parts)
