"""Starter prompts offered before a conversation exists."""

from __future__ import annotations

from dataclasses import dataclass
import random


@dataclass(frozen=True)
class StarterPrompt:
    title: str
    prompt: str


STARTER_PROMPTS: tuple[StarterPrompt, ...] = (
    # Explain
    StarterPrompt("Explain a concept", "Explain quantum computing in simple terms."),
    StarterPrompt("Break down a topic", "What are the main causes of climate change?"),
    StarterPrompt("Simplify a theory", "Explain the theory of relativity like I'm five."),
    StarterPrompt(
        "Summarize a book",
        "Summarize the key ideas of 'Sapiens: A Brief History of Humankind'.",
    ),
    # Creative
    StarterPrompt("Write a story", "Write a short story about a robot who discovers music."),
    StarterPrompt("Draft a poem", "Write a poem about the city at night."),
    StarterPrompt(
        "Imagine a scenario",
        "What would a conversation between Shakespeare and a modern teenager be like?",
    ),
    StarterPrompt("Create a character", "Describe a fantasy character who is a chef for dragons."),
    # Code
    StarterPrompt("Code a function", "Write a python function to check if a number is prime."),
    StarterPrompt(
        "Debug this code",
        "Find the bug in this JavaScript code snippet: "
        "`const arr = [1, 2, 3]; arr.length = 0; console.log(arr[0]);`",
    ),
    StarterPrompt(
        "Explain a snippet",
        "What does the `useMemo` hook do in React? Provide a simple example.",
    ),
    StarterPrompt(
        "Suggest an architecture",
        "Suggest a simple architecture for a to-do list application.",
    ),
    # Plan
    StarterPrompt("Plan a trip", "Create a 3-day itinerary for a trip to Paris."),
    StarterPrompt("Outline a project", "Outline the steps to launch a personal blog."),
    StarterPrompt("Design a workout", "Create a 30-minute workout plan for beginners."),
    StarterPrompt("Draft an email", "Draft a professional email asking for a deadline extension."),
)


def random_starter_prompts(
    count: int = 4, rng: random.Random | None = None
) -> list[StarterPrompt]:
    """Pick ``count`` distinct starter prompts."""
    chooser = rng or random.Random()
    return chooser.sample(STARTER_PROMPTS, k=max(0, min(count, len(STARTER_PROMPTS))))
