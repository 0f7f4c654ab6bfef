"""
Prompt templates for note question answering.
"""

NOTES_QA_PROMPT = """
Context from the user's notes:

{context}

Question: {query}

Instructions:
1. Answer using only the information in the notes above.
2. If the notes do not contain information relevant to the question, say so plainly, e.g. "I don't know anything about [the topic]. There is no relevant information in your notes."
3. Do not invent facts or fall back on general knowledge.
4. Keep the answer short and focused on what the notes say.

Answer:"""


NO_CONTEXT_ANSWER = (
    "I don't know anything about {query}. "
    "There is no relevant information in your notes."
)
