"""
pbirag - Prompt Templates & Canned Responses
=============================================
Centralised prompt management for the RAG engine.  All prompts live
here so they can be versioned and reviewed independently of
application logic.

Exports
-------
QUERY_REWRITE_PROMPT, ANSWER_SYSTEM_PROMPT, CONTEXT_SEPARATOR,
NO_CONTEXT_RESPONSE, NOT_FOUND_ANSWER,
HEALTH_MESSAGE, HISTORY_CLEARED_MESSAGE.
"""

# ══════════════════════════════════════════════════════════════════════
#  QUERY REWRITING
# ══════════════════════════════════════════════════════════════════════

QUERY_REWRITE_PROMPT: str = """You are a query rewriting expert. Based on the provided chat history,
rephrase the "Follow Up user Question" into a complete, standalone question that can be
understood without the chat history. Only output the rewritten question and nothing else."""


# ══════════════════════════════════════════════════════════════════════
#  ANSWER GENERATION
# ══════════════════════════════════════════════════════════════════════

NOT_FOUND_ANSWER: str = "I could not find the answer in the provided document."

ANSWER_SYSTEM_PROMPT: str = f"""You are a Microsoft Power BI Expert.
You will be given a context of relevant information and a user question.
Your task is to answer the user's question based ONLY on the provided context with full detail available in that.
If the answer is not in the context, you must say "{NOT_FOUND_ANSWER}"
Keep your answers clear, concise, and educational.
Format your response with proper markdown for better readability.

Context: {{context}}
"""

# Retrieved passages are joined with a visible horizontal rule
CONTEXT_SEPARATOR: str = "\n\n---\n\n"


# ══════════════════════════════════════════════════════════════════════
#  CANNED RESPONSES
# ══════════════════════════════════════════════════════════════════════

NO_CONTEXT_RESPONSE: str = "I could not find relevant information in the provided document."

HEALTH_MESSAGE: str = "PowerBI RAG Server is running"

HISTORY_CLEARED_MESSAGE: str = "History cleared successfully"
