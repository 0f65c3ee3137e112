from langchain_core.prompts import PromptTemplate

SUMMARIZE_TEXT_TEMPLATE = PromptTemplate(
    input_variables=["context_info", "input_text"],
    template=(
        "You are an AI assistant specialized in summarizing technical documentation.\n"
        "Your task is to read the following text, which may contain technical language "
        "related to software systems, architecture, or implementation details.\n"
        "Provide a concise summary (2 to 4 sentences) that captures the main idea and key "
        "points, making it easy for developers to quickly understand the content.\n"
        "Avoid repeating the original text verbatim and exclude any unnecessary detail "
        "or boilerplate.\n\n"
        "{context_info}\n\n"
        "Input Text:\n{input_text}"
    ),
)

SUMMARIZE_CODE_TEMPLATE = PromptTemplate(
    input_variables=["context_info", "input_text"],
    template=(
        "You are a senior software engineer with deep expertise in reading and "
        "interpreting code.\n"
        "Your task is to analyze the provided code snippet and its contextual "
        "information, then generate a concise and clear summary of what the code does.\n"
        "Focus on clarity and brevity. Avoid repeating comments or variable names unless "
        "they are essential to understanding the logic.\n\n"
        "{context_info}\n\n"
        "Code Snippet:\n{input_text}"
    ),
)

REFINE_QUERY_TEMPLATE = PromptTemplate(
    input_variables=["user_question"],
    template=(
        "You are an AI assistant. Rephrase a user's question into a search query.\n\n"
        "### Example\n"
        'User Question: "How do I add an item to the cart?"\n'
        'Rephrased Search Query: "Code for adding a product to the shopping cart."\n\n'
        "### Example\n"
        'User Question: "Where are the API routes?"\n'
        "Rephrased Search Query: \"File defining the application's API endpoints and "
        'routing logic."\n\n'
        "### Example\n"
        'User Question: "What happens during user signup?"\n'
        'Rephrased Search Query: "User registration process, including validation, '
        'user creation, and password hashing."\n\n'
        "### Task\n"
        'User Question: "{user_question}"\n'
        "Rephrased Search Query:"
    ),
)

ANSWER_FROM_CONTEXT_TEMPLATE = PromptTemplate(
    input_variables=["context_data", "user_query"],
    template=(
        "As a senior software engineer, your primary role is to answer the user's "
        "question about a codebase using the provided code snippets as your sole source "
        "of truth.\n\n"
        "Instructions:\n"
        '1. Carefully analyze the code snippets provided in the "Context" section.\n'
        '2. Formulate a clear and concise answer to the "User Question" based '
        "exclusively on this context.\n"
        "3. Do not use any external knowledge or make assumptions about the codebase "
        "that are not supported by the context.\n"
        "4. If you write code, ensure it aligns with the style and conventions found in "
        "the provided snippets.\n"
        "5. If the context is insufficient to answer the question, respond with: "
        '"I cannot answer this question based on the provided code snippets."\n\n'
        "---\n\n"
        "Context:\n{context_data}\n\n"
        "---\n\n"
        "User Question:\n{user_query}\n\n"
        "---\n\n"
        "Your Answer:"
    ),
)


def format_context_info(language: str | None, source_name: str | None) -> str:
    lines = []
    if language:
        lines.append(f" - Coding language: {language}")
    if source_name:
        lines.append(f" - Filename: {source_name}")
    if not lines:
        return ""
    return "Context Information:\n" + "\n".join(lines)
