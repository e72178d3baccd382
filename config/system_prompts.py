DEFAULT_SYSTEM_PROMPT = (
    "Respond in plain text only, without any markdown formatting. "
    "Do not use asterisks, underscores, or other formatting symbols. "
    "Present information in simple sentences and paragraphs."
)

TITLE_PROMPT = (
    "Generate a concise 3-5 word title for this conversation based on the user's "
    "first message. Return only the title, no quotes, no punctuation."
)
