"""Prompt building for meme generation."""

import logging
import re
from typing import Optional
from enum import Enum

logger = logging.getLogger(__name__)


DEFAULT_PHRASE = "Make it humorous, clever and relatable"

VISION_FALLBACK_PHRASE = "a person having a hilariously dramatic everyday moment"

QUALITY_INSTRUCTIONS = (
    "Add bold text overlay with a witty caption. "
    "Make it suitable for social media sharing. "
    "High resolution, clear legible text, internet meme format."
)

FALLBACK_PROMPT = "A funny internet meme with a bold, legible caption. Square format, high quality."


class VisionMode(Enum):
    """What the vision step should produce."""
    DESCRIPTION = "description"
    PROMPT = "prompt"


class MemeStyle(Enum):
    """Known meme style tags."""
    MEME = "meme"
    CLASSIC = "classic"
    WHOLESOME = "wholesome"
    DANK = "dank"
    DEEP_FRIED = "deep_fried"
    MINIMAL = "minimal"


STYLE_DESCRIPTORS = {
    MemeStyle.MEME: "classic internet meme with bold text, high contrast",
    MemeStyle.CLASSIC: "image macro with white Impact font top and bottom captions",
    MemeStyle.WHOLESOME: "wholesome, warm and friendly meme, soft colors",
    MemeStyle.DANK: "absurd, surreal dank meme, saturated colors",
    MemeStyle.DEEP_FRIED: "deep fried meme look, oversaturated, heavy contrast, lens flares",
    MemeStyle.MINIMAL: "minimalist meme, clean background, single short caption",
}

VISION_INSTRUCTIONS = {
    VisionMode.DESCRIPTION: (
        "Describe this image in one or two sentences for a meme artist. "
        "Mention the main subject, their expression and the setting. "
        "Do not identify real people."
    ),
    VisionMode.PROMPT: (
        "Write a single image-generation prompt for a funny internet meme based on this "
        "image. Describe the scene, the subject's expression and a witty caption to "
        "overlay in bold text. Do not identify real people. Reply with the prompt only."
    ),
}


class MemePromptEnhancer:
    """Builds the enhanced prompt sent to image providers."""

    def __init__(self):
        """Initialize the prompt enhancer."""
        logger.info("MemePromptEnhancer initialized")

    def describe_style(self, style: Optional[str]) -> str:
        """Expand a known style tag, passing unknown tags through verbatim.

        Args:
            style: Style tag from the request

        Returns:
            Style descriptor text
        """
        if not style:
            return STYLE_DESCRIPTORS[MemeStyle.MEME]
        try:
            return STYLE_DESCRIPTORS[MemeStyle(style.strip().lower())]
        except ValueError:
            return style.strip()

    def build_prompt(
        self,
        user_prompt: Optional[str] = None,
        style: Optional[str] = None,
        image_context: Optional[str] = None,
        vision_prompt: Optional[str] = None
    ) -> str:
        """Build the enhanced meme prompt.

        The prompt is the concatenation of an optional image-context clause,
        the subject (user prompt, else vision-derived prompt, else the default
        phrase), the style and the fixed quality instructions.

        Args:
            user_prompt: Visitor-supplied instructions
            style: Style tag
            image_context: Vision-derived description of the uploaded photo
            vision_prompt: Vision-derived ready-to-use prompt

        Returns:
            Enhanced prompt
        """
        parts = ["Create a funny internet meme"]

        if image_context:
            parts[0] += f" based on a photo showing {image_context.strip().rstrip('.')}."
        else:
            parts[0] += "."

        if user_prompt and user_prompt.strip():
            subject = user_prompt.strip()
            if vision_prompt:
                parts.append(f"Scene: {vision_prompt.strip().rstrip('.')}.")
        elif vision_prompt and vision_prompt.strip():
            subject = vision_prompt.strip()
        else:
            subject = DEFAULT_PHRASE
        parts.append(subject if subject.endswith('.') else f"{subject}.")

        parts.append(f"Style: {self.describe_style(style)}.")
        parts.append(QUALITY_INSTRUCTIONS)

        enhanced = self._clean_prompt(" ".join(parts))
        logger.debug(f"Enhanced prompt: '{user_prompt}' -> '{enhanced}'")
        return enhanced

    def build_fallback_prompt(self) -> str:
        """Minimal, context-free prompt for the final fallback strategy."""
        return FALLBACK_PROMPT

    def vision_instruction(self, mode: VisionMode) -> str:
        """Instruction handed to the vision describer for a mode."""
        return VISION_INSTRUCTIONS[mode]

    def _clean_prompt(self, prompt: str) -> str:
        """Clean and normalize prompt text.

        Args:
            prompt: Prompt to clean

        Returns:
            Cleaned prompt
        """
        # Remove extra spaces
        prompt = re.sub(r'\s+', ' ', prompt)

        # Collapse repeated punctuation
        prompt = re.sub(r'\.\s*\.', '.', prompt)

        return prompt.strip()

    def __repr__(self) -> str:
        """String representation."""
        return f"MemePromptEnhancer(styles={len(STYLE_DESCRIPTORS)})"


# Global prompt enhancer instance
_global_enhancer: Optional[MemePromptEnhancer] = None


def get_prompt_enhancer() -> MemePromptEnhancer:
    """Get or create the global prompt enhancer instance.

    Returns:
        Global MemePromptEnhancer instance
    """
    global _global_enhancer

    if _global_enhancer is None:
        _global_enhancer = MemePromptEnhancer()

    return _global_enhancer


def reset_prompt_enhancer() -> None:
    """Reset the global prompt enhancer instance (useful for testing)."""
    global _global_enhancer
    _global_enhancer = None
