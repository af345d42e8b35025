"""Chat history formatting for the model chain.

Turns stored session messages into LangChain role-tagged messages and builds
the variables the chain's prompt template expects.
"""

from typing import Iterable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from chatline.api.schemas import Message, coerce_text


def to_langchain_message(message: Message) -> BaseMessage:
    """Map one stored message by sender: user -> human, anything else -> ai."""
    text = coerce_text(message.text)
    if message.sender == "user":
        return HumanMessage(content=text)
    return AIMessage(content=text)


def format_history(
    messages: Iterable[Message],
    is_edited: bool = False,
    edited_message_id: str | None = None,
) -> list[BaseMessage]:
    """Convert stored messages to role-tagged history.

    Args:
        messages: Session messages, oldest first.
        is_edited: True when the request comes from editing a message.
        edited_message_id: Id of the message being edited; excluded from the
            result only when ``is_edited`` is set.

    Returns:
        LangChain messages in the original order.
    """
    return [
        to_langchain_message(msg)
        for msg in messages
        if not (is_edited and msg.id == edited_message_id)
    ]


def build_prompt_input(user_input: str, chat_history: list[BaseMessage] | None = None) -> dict:
    """Variables for the ``{chat_history}`` / ``{input}`` prompt template."""
    return {
        "input": user_input,
        "chat_history": list(chat_history or []),
    }
