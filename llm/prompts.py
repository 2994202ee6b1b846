from __future__ import annotations

from typing import Literal

ScriptAction = Literal["write", "shorten", "longer", "engaging"]

SCRIPT_WRITER_SYSTEM_PROMPT = (
    "You are a professional script writer for short social media videos presented "
    "by an AI avatar. Write in a natural, conversational voice meant to be spoken aloud. "
    "Return only the script text, without stage directions, headings or quotes."
)


def script_prompt(action: ScriptAction, script: str) -> str:
    if action == "shorten":
        return f"Make this script more concise while maintaining its key message: {script}"
    if action == "longer":
        return f"Expand this script with more details and examples while maintaining its tone: {script}"
    if action == "engaging":
        return f"Make this script more engaging and captivating while maintaining its core message: {script}"
    return script


def planner_prompt(prompt: str, cta: str = "") -> str:
    return "\n".join(
        [
            "Create a script for a social media video with the following context:",
            prompt.strip(),
            "",
            f"Call to Action: {cta.strip()}",
            "",
            "Make the script engaging, conversational, and natural. "
            "Include the call to action seamlessly.",
        ]
    )


def script_messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SCRIPT_WRITER_SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]
