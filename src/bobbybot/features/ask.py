"""Talk to Bobby: AI chat triggered by mentioning "bobby".

Replies come from the Anthropic Messages API when a key is configured.
Without a key, or when the API fails, Bobby answers from a small set of
canned replies picked by what the message seems to be about. Each user has a
short rolling conversation history (kept in memory) and an optional
persisted memory that is folded into the system prompt.
"""

from __future__ import annotations

import logging
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anthropic
import discord
from sqlalchemy.exc import SQLAlchemyError

from bobbybot.core.command_router import Command
from bobbybot.core.cooldowns import CooldownTracker, PeriodicPrune
from bobbybot.core.interaction_router import SlashCommand
from bobbybot.core.registry import Feature, FeatureContext
from bobbybot.discord.embeds import COLOR_LEVEL
from bobbybot.discord.helpers import db_session

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

MAX_HISTORY_EXCHANGES = 5
CONVERSATION_IDLE_SECONDS = 60 * 60
ASK_COOLDOWN_SECONDS = 10
MAX_MEMORY_LENGTH = 500
MAX_QUESTION_LENGTH = 200
LONG_REPLY_LENGTH = 400

_AI_TIMEOUT_SECONDS = 25.0

BOBBY_SYSTEM_PROMPT = """\
You are Bobby, the friendly assistant bot of this Discord server.
Keep replies short and casual (1-3 sentences unless asked for detail).
You can point people to commands: !help lists everything, !balance and
!baltop for Bobby Bucks, !level for XP, !valorantteam to start a five-stack,
!inhouse for a ten-player in-house match.
Never claim to have performed an action you cannot perform."""

EIGHT_BALL_PROMPT = """\
You are a mystical Magic 8-Ball. Answer with a short, cryptic, fortune-teller
style response (1-2 sentences). Lean yes, no, or maybe."""

FALLBACK_REPLIES: dict[str, list[str]] = {
    "greeting": [
        "Hey! Bobby here! 👋 Try `!help` to see what I can do!",
        "Hello! What's up? Need anything? `!help` has the full list!",
    ],
    "help": [
        "I'd love to help! Try `!help` to see all my commands.",
        "Need a hand? `!help` lists everything I can do.",
    ],
    "money": [
        "Bobby Bucks! Check your stash with `!balance` and the richest with `!baltop`. 💰",
    ],
    "games": [
        "Want to play? Start a squad with `!valorantteam` or an in-house with `!inhouse`! 🎯",
    ],
    "error": [
        "Oops! Something went wrong on my end. Try again in a bit!",
        "Sorry, I'm having a moment! Give it another shot.",
    ],
}

EIGHT_BALL_FALLBACKS = [
    "The spirits are unclear... Ask again later.",
    "The cosmic forces are disrupted... Try again.",
    "The answer is clouded in mystery... Ask once more.",
]

_INTENTS: list[tuple[str, re.Pattern[str]]] = [
    ("greeting", re.compile(r"\b(hi|hello|hey|sup|yo|greetings)\b")),
    ("help", re.compile(r"\b(help|commands|what can you|how do i|guide)\b")),
    ("money", re.compile(r"\b(money|bucks|broke|poor|earn|balance)\b")),
    ("games", re.compile(r"\b(game|play|fun|bored|valorant|team)\b")),
]


def detect_intent(text: str) -> str:
    lowered = text.lower()
    for intent, pattern in _INTENTS:
        if pattern.search(lowered):
            return intent
    return "help"


@dataclass
class Conversation:
    messages: list[dict[str, str]] = field(default_factory=list)
    last_active: float = 0.0


class ConversationStore:
    """Per-user rolling chat history that expires after an idle hour."""

    def __init__(
        self,
        max_exchanges: int = MAX_HISTORY_EXCHANGES,
        idle_seconds: float = CONVERSATION_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_exchanges = max_exchanges
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._conversations: dict[int, Conversation] = {}

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def history(self, user_id: int) -> list[dict[str, str]]:
        conversation = self._conversations.get(user_id)
        if conversation is None:
            return []
        if self._clock() - conversation.last_active >= self.idle_seconds:
            del self._conversations[user_id]
            return []
        return list(conversation.messages)

    def add_exchange(self, user_id: int, prompt: str, reply: str) -> None:
        conversation = self._conversations.setdefault(user_id, Conversation())
        conversation.messages.extend(
            [{"role": "user", "content": prompt}, {"role": "assistant", "content": reply}]
        )
        conversation.messages = conversation.messages[-2 * self.max_exchanges :]
        conversation.last_active = self._clock()

    def reset(self, user_id: int) -> bool:
        return self._conversations.pop(user_id, None) is not None

    def prune(self) -> int:
        now = self._clock()
        expired = [
            uid
            for uid, c in self._conversations.items()
            if now - c.last_active >= self.idle_seconds
        ]
        for uid in expired:
            del self._conversations[uid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._conversations)


def _response_text(response: Any) -> str:
    return "".join(getattr(block, "text", "") for block in response.content).strip()


class BobbyChat:
    def __init__(
        self,
        engine: AsyncEngine,
        *,
        client: anthropic.AsyncAnthropic | None = None,
        model: str = "",
        prefix: str = "!",
        conversations: ConversationStore | None = None,
        cooldowns: CooldownTracker | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.engine = engine
        self.client = client
        self.model = model
        self.prefix = prefix
        if conversations is None:
            conversations = ConversationStore()
        if cooldowns is None:
            cooldowns = CooldownTracker(ASK_COOLDOWN_SECONDS)
        self.conversations = conversations
        self.cooldowns = cooldowns
        self.rng = rng if rng is not None else random.Random()
        self._prune = PeriodicPrune(self._prune_all, clock=conversations.clock)

    def _prune_all(self) -> int:
        return self.conversations.prune() + self.cooldowns.prune()

    def fallback(self, text: str) -> str:
        return self.rng.choice(FALLBACK_REPLIES[detect_intent(text)])

    async def _memory(self, guild_id: int, user_id: int) -> str:
        try:
            async with db_session(self.engine) as repo:
                return await repo.get_memory(str(guild_id), str(user_id))
        except SQLAlchemyError:
            logger.exception("ask_memory_lookup_failed user=%s", user_id)
            return ""

    async def generate_reply(
        self, guild_id: int, user_id: int, display_name: str, text: str
    ) -> str:
        """AI reply for *text*, or a canned one when the AI is unavailable."""
        if self.client is None:
            return self.fallback(text)

        system = BOBBY_SYSTEM_PROMPT + f"\n\nYou are talking to {display_name}."
        memory = await self._memory(guild_id, user_id)
        if memory:
            system += f"\nWhat you remember about them: {memory}"
        messages = [*self.conversations.history(user_id), {"role": "user", "content": text}]

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=300,
                system=system,
                messages=messages,
            )
            reply = _response_text(response)
        except anthropic.APIError as exc:
            logger.warning("ask_ai_failed user=%s err=%s", user_id, exc)
            return self.rng.choice(FALLBACK_REPLIES["error"])
        if not reply:
            return self.fallback(text)

        self.conversations.add_exchange(user_id, text, reply)
        return reply

    # --- Processor ---

    async def respond(self, message: discord.Message) -> None:
        """Message processor: answer guild messages that mention Bobby."""
        content = message.content or ""
        if message.guild is None or content.startswith(self.prefix):
            return
        if "bobby" not in content.lower():
            return
        if dropped := self._prune():
            logger.debug("ask_state_pruned count=%d", dropped)
        if not self.cooldowns.try_acquire(message.author.id):
            logger.debug("ask_cooldown user=%s", message.author.id)
            return

        reply = await self.generate_reply(
            message.guild.id, message.author.id, message.author.display_name, content
        )
        if len(reply) > LONG_REPLY_LENGTH:
            embed = discord.Embed(description=reply, color=COLOR_LEVEL)
            embed.set_author(name="Bobby")
            embed.set_footer(text="Type !help for commands")
            await message.channel.send(embed=embed)
        else:
            await message.channel.send(reply)

    # --- Commands ---

    async def reset(self, message: discord.Message, args: list[str]) -> None:
        self.conversations.reset(message.author.id)
        self.cooldowns.reset(message.author.id)
        await message.channel.send(
            "🔄 Your conversation history with Bobby has been reset! Start fresh!"
        )

    async def set_memory(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        text = " ".join(args).strip()
        if not text:
            await message.channel.send(
                "💭 Tell me what to remember! Example: `!setmemory Call me Captain, I main Jett`"
            )
            return
        if len(text) > MAX_MEMORY_LENGTH:
            await message.channel.send(
                f"❌ Memory is too long! Keep it under {MAX_MEMORY_LENGTH} characters."
            )
            return
        async with db_session(self.engine) as repo:
            await repo.set_memory(str(message.guild.id), str(message.author.id), text)
        self.conversations.reset(message.author.id)
        await message.channel.send(f'🧠 Got it! I\'ll remember: "{text}"')

    async def show_memory(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        memory = await self._memory(message.guild.id, message.author.id)
        if memory:
            await message.channel.send(f'🧠 Here\'s what I remember about you:\n"{memory}"')
        else:
            await message.channel.send(
                "💭 I don't have any memories about you yet! Use `!setmemory <text>`."
            )

    async def forget(self, message: discord.Message, args: list[str]) -> None:
        if message.guild is None:
            return
        async with db_session(self.engine) as repo:
            cleared = await repo.clear_memory(str(message.guild.id), str(message.author.id))
        self.conversations.reset(message.author.id)
        if cleared:
            await message.channel.send("🗑️ I've forgotten everything about you.")
        else:
            await message.channel.send("💭 I don't have any memories about you to forget!")

    async def eight_ball(self, message: discord.Message, args: list[str]) -> None:
        question = " ".join(args).strip()
        if not question:
            await message.channel.send(
                "🎱 Ask me a yes/no question! Example: `!8ball Will I win?`"
            )
            return
        if len(question) > MAX_QUESTION_LENGTH:
            await message.channel.send(
                f"❌ Please keep your question under {MAX_QUESTION_LENGTH} characters."
            )
            return
        if self.client is None:
            await message.channel.send(f"🎱 {self.rng.choice(EIGHT_BALL_FALLBACKS)}")
            return
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=100,
                system=EIGHT_BALL_PROMPT,
                messages=[{"role": "user", "content": question}],
            )
            answer = _response_text(response) or self.rng.choice(EIGHT_BALL_FALLBACKS)
        except anthropic.APIError as exc:
            logger.warning("eight_ball_ai_failed user=%s err=%s", message.author.id, exc)
            answer = self.rng.choice(EIGHT_BALL_FALLBACKS)
        await message.channel.send(f"🎱 {answer}")

    async def reset_slash(self, interaction: discord.Interaction) -> None:
        self.conversations.reset(interaction.user.id)
        await interaction.response.send_message(
            "🔄 Your conversation history with Bobby has been reset!", ephemeral=True
        )

    def dispose(self) -> None:
        dropped = self.conversations.prune()
        logger.debug("ask_disposed conversations_pruned=%d", dropped)


def setup(context: FeatureContext) -> Feature:
    settings = context.settings
    client = None
    if settings.anthropic_api_key:
        client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            timeout=_AI_TIMEOUT_SECONDS,
            max_retries=1,
        )
    else:
        logger.info("ask_ai_disabled reason=no_api_key")
    chat = BobbyChat(
        context.engine,
        client=client,
        model=settings.bobby_ai_model,
        prefix=settings.command_prefix,
    )
    return Feature(
        name="ask",
        commands=[
            Command(
                "resetbobby",
                chat.reset,
                aliases=("clearbobby",),
                usage="resetbobby",
                description="Reset your conversation with Bobby",
            ),
            Command(
                "setmemory",
                chat.set_memory,
                aliases=("remember",),
                usage="setmemory <text>",
                description="Tell Bobby something to remember about you",
            ),
            Command(
                "mymemory",
                chat.show_memory,
                aliases=("whatdoyouknow",),
                usage="mymemory",
                description="See what Bobby remembers about you",
            ),
            Command(
                "forgetme",
                chat.forget,
                aliases=("clearmemory",),
                usage="forgetme",
                description="Make Bobby forget what it remembers about you",
            ),
            Command(
                "8ball",
                chat.eight_ball,
                aliases=("ask", "magic8ball"),
                usage="8ball <question>",
                description="Ask the magic 8-ball",
            ),
        ],
        processors=[chat.respond],
        slash_commands=[
            SlashCommand("resetbobby", chat.reset_slash, "Reset your conversation with Bobby")
        ],
        dispose=chat.dispose,
    )
