"""
Prompt for call 3 - rank listing photos for the hero banner.
"""
MAX_VISION_IMAGES = 10

SYSTEM_MESSAGE = "You are a professional real estate photographer and curator. Respond with valid JSON only."


def build_vision_prompt(image_count: int) -> str:
    return f"""Analyze these {image_count} images and select the SINGLE BEST image for the hero banner of a luxury real estate website.

Score each image 0-10 on:
1. composition: wide angle, balanced, professional framing
2. lighting: bright, natural light, no dark corners
3. wow_factor: does it sell the lifestyle (views, pools, architecture, luxury interiors)?
4. quality: sharpness and professional photo feel

The overall score is the average of the four criteria. The best hero is usually an
exterior shot, pool area, dramatic view or stunning living space.

Return ONLY this JSON:
{{
  "best_image_index": <0-based index>,
  "reasoning": "<1-2 sentences>",
  "images": [
    {{
      "index": 0,
      "description": "<10-20 words>",
      "score": <0-10>,
      "composition": <0-10>,
      "lighting": <0-10>,
      "wow_factor": <0-10>,
      "quality": <0-10>
    }}
  ]
}}

One object per image, in the order provided. Scores are integers 0-10."""
