# Prompt templates for Werewolf game actions
# Each prompt is a Jinja2 template that gets rendered with the seat's game view

# ============================================================================
# CORE CONTEXT SECTIONS
# ============================================================================

# Basic game rules shown to all players
GAME = """You are playing a digital version of the social deduction game Werewolf.

GAME RULES:
- Players: {{num_players}} seats - {{role_counts}}.
- Each night the Guard protects one player (never the same player two nights in a row), the Werewolves remove one player, the Witch may use her single antidote or her single poison, and the Seer learns whether one player is a Werewolf.
- If the Guard and the Witch's antidote land on the same player, that player still dies.
- Each day players debate and vote to remove one player. On the first day players elect a Sheriff whose vote counts 1.5. A tied vote removes nobody.
- The Hunter shoots one player when removed, unless poisoned.
- Winning Conditions: Villagers win by removing every Werewolf. Werewolves win when they are at least as many as everybody else."""

# Current game state from the player's perspective
STATE = """GAME STATE:
- It is Day {{day}} ({{phase}}).
- You are {{name}}, Seat {{seat}}, the {{role}}.
{% if persona -%}
- Personality: {{ persona }}
{% endif -%}
- Alive players: {{ alive_players|join(', ') }}
{% if dead_players -%}
- Removed players: {{ dead_players|join(', ') }}
{% endif -%}
{% if sheriff -%}
- Sheriff: {{ sheriff }}
{% endif -%}"""

# Private knowledge accumulated throughout the game
KNOWLEDGE = """{% if knowledge|length -%}YOUR PRIVATE KNOWLEDGE:
{% for line in knowledge -%}
- {{ line }}
{% endfor %}
{% endif %}"""

# Compressed facts from previous days
SUMMARIES = """{% if summaries|length -%}EARLIER DAYS:
{% for line in summaries -%}
- {{ line }}
{% endfor %}
{% endif %}"""

# Recent public conversation
CONVERSATION = """{% if messages|length -%}RECENT CONVERSATION:
{% for line in messages -%}
{{ line }}
{% endfor %}
{% else -%}
Nobody has spoken yet.
{% endif %}"""

# Standard prefix combining game rules, state, and history
PREFIX = f"""{GAME}

{STATE}

{KNOWLEDGE}
{SUMMARIES}
{CONVERSATION}
""".strip() + "\n\n"

# Common tail listing the legal choices
OPTIONS = """{% if notes -%}
NOTE: {{ notes }}
{% endif -%}
Choose from: {{ options|join('; ') }}
"""

SEAT_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "seat": {"type": "integer"},
    },
    "required": ["reasoning", "seat"],
}

# ============================================================================
# DAY PROMPTS
# ============================================================================

# VOTE: Player votes to remove someone
VOTE = PREFIX + """INSTRUCTIONS:
- Decide who to vote out as {{name}} the {{role}}.
{% if role == 'Werewolf' -%}
- Target Villagers who threaten you, especially those who might be Seer or Witch.
- If Villagers suspect one of their own, join the chorus and pile on.
{% else -%}
- Look for inconsistencies, deflection, discord-sowing, or unusual silence.
{% endif -%}
- You must choose someone.
""" + OPTIONS + """
```json
{
  "reasoning": "string", // Explain your reasoning. Avoid violent language.
  "seat": number // Seat number of the player to vote out
}
```"""

VOTE_SCHEMA = SEAT_SCHEMA

# BADGE_SIGNUP: Player decides whether to run for Sheriff
BADGE_SIGNUP = PREFIX + """INSTRUCTIONS:
- The Sheriff election is starting. Decide whether {{name}} the {{role}} runs for Sheriff.
- The Sheriff's vote counts 1.5 and the Sheriff speaks last in every discussion.
- Candidates cannot vote in the election.

```json
{
  "reasoning": "string", // Why you do or do not want the badge
  "signup": boolean // true to run for Sheriff
}
```"""

BADGE_SIGNUP_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "signup": {"type": "boolean"},
    },
    "required": ["reasoning", "signup"],
}

# BADGE_VOTE: Non-candidate votes for Sheriff
BADGE_VOTE = PREFIX + """INSTRUCTIONS:
- Vote for the Sheriff as {{name}} the {{role}}.
- Support the candidate you trust most to lead the village.
""" + OPTIONS + """
```json
{
  "reasoning": "string", // Why this candidate
  "seat": number // Seat number of your candidate
}
```"""

# BADGE_TRANSFER: Departing Sheriff hands over the badge
BADGE_TRANSFER = PREFIX + """INSTRUCTIONS:
- You ({{name}}, the Sheriff) have been removed. Hand the Sheriff badge to another player.
{% if role == 'Werewolf' -%}
- A Werewolf holding the badge helps your team.
{% else -%}
- Give the badge to the player you trust most.
{% endif -%}
""" + OPTIONS + """
```json
{
  "reasoning": "string",
  "seat": number // Seat number of the new Sheriff
}
```"""

# ============================================================================
# NIGHT PROMPTS
# ============================================================================

# SEER_CHECK: Seer's night action to learn a player's alignment
SEER_CHECK = PREFIX + """INSTRUCTIONS:
- It is Night {{day}}. As {{name}} the {{role}}, choose who to investigate.
{% if day == 1 -%}
- No information is available yet, so choose randomly.
{% else -%}
- Look for behavior deviating from typical villager patterns.
- Focus on influential players you have not checked yet.
{% endif -%}
""" + OPTIONS + """
```json
{
  "reasoning": "string", // Analyze the evidence and justify your decision.
  "seat": number // Seat number of the player to investigate
}
```"""

# WOLF_KILL: Werewolf's night action to remove a player
WOLF_KILL = PREFIX + """INSTRUCTIONS:
- It is Night {{day}}. As {{name}} the {{role}}, choose who your team removes tonight.
{% if day == 1 -%}
- No information is available yet, so choose randomly.
{% else -%}
- Target influential Villagers who threaten your anonymity, like a claimed Seer.
{% endif -%}
- Coordinate with your fellow Werewolves: the team removes the player with the most votes.
""" + OPTIONS + """
```json
{
  "reasoning": "string", // Explain your reasoning step-by-step. Avoid violent language.
  "seat": number // Seat number of the player to remove
}
```"""

# GUARD: Guard's night action to protect a player
GUARD = PREFIX + """INSTRUCTIONS:
- It is Night {{day}}. As {{name}} the {{role}}, choose who to protect.
- You may protect yourself, but not the same player two nights in a row.
""" + OPTIONS + """
```json
{
  "reasoning": "string", // Analyze the evidence and justify your decision.
  "seat": number // Seat number of the player to protect
}
```"""

# WITCH: Witch chooses between antidote, poison, or nothing
WITCH = PREFIX + """INSTRUCTIONS:
- It is Night {{day}}. You are {{name}} the {{role}}.
{% if wolf_target -%}
- Tonight the Werewolves attacked {{ wolf_target }}.
{% else -%}
- You do not know who the Werewolves attacked tonight.
{% endif -%}
- You may save the attacked player, poison one player, or pass. Each potion works once per game.
""" + OPTIONS + """
```json
{
  "reasoning": "string",
  "action": "string", // "save" | "poison" | "pass"
  "seat": number // Seat number to poison, only for "poison"
}
```"""

WITCH_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "action": {"type": "string", "enum": ["save", "poison", "pass"]},
        "seat": {"type": "integer"},
    },
    "required": ["reasoning", "action"],
}

# HUNTER_SHOOT: Removed Hunter may take one player along
HUNTER_SHOOT = PREFIX + """INSTRUCTIONS:
- You ({{name}}, the Hunter) have been removed. You may shoot one player or pass.
- Shoot the player you most suspect of being a Werewolf.
""" + OPTIONS + """
```json
{
  "reasoning": "string",
  "action": "string", // "shoot" | "pass"
  "seat": number // Seat number to shoot
}
```"""

HUNTER_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "action": {"type": "string", "enum": ["shoot", "pass"]},
        "seat": {"type": "integer"},
    },
    "required": ["reasoning", "action"],
}

# ============================================================================
# SPEECH AND SUMMARY
# ============================================================================

SPEECH = PREFIX + """INSTRUCTIONS:
{% if occasion == 'last_words' -%}
- You ({{name}}) have been removed from the game. Give your last words to the village.
{% elif occasion == 'badge_speech' -%}
- You are running for Sheriff. Convince the village to vote for you.
{% elif occasion == 'pk_speech' -%}
- You are tied with other players. Make your final case before the runoff vote.
{% else -%}
- It is your turn to speak in the day discussion as {{name}} the {{role}}.
{% endif -%}
{% if role == 'Werewolf' -%}
- Your goal: sow chaos, evade detection, cast suspicion on Villagers.
- Appear helpful while undermining Villagers. Claim roles sparingly.
{% else -%}
- Your goal: uncover Werewolves and protect the Village.
- Scrutinize accusations, expose inconsistencies, call out suspicious behavior.
{% endif -%}
- Refer to players by seat number. There are only seats 1 to {{num_players}}.

```json
{
  "reasoning": "string", // Your strategy. Avoid violent language.
  "say": "string" // Your public statement. Be concise and persuasive.
}
```"""

SPEECH_SCHEMA = {
    "type": "object",
    "properties": {
        "reasoning": {"type": "string"},
        "say": {"type": "string"},
    },
    "required": ["reasoning", "say"],
}

# SUMMARY: Neutral narrator compresses one day into facts
SUMMARY = """You are the neutral record keeper of a game of Werewolf with {{num_players}} seats.
Below is the full transcript of Day {{day}}.

TRANSCRIPT:
{{ transcript }}

INSTRUCTIONS:
- Write {{min_bullets}} to {{max_bullets}} short factual bullets about this day.
- Cover who claimed which role, who accused whom, how people voted and why, and any contradictions.
- Refer to players by seat number. Do not guess hidden roles.

```json
{
  "bullets": ["string"] // One fact per bullet
}
```"""

SUMMARY_SCHEMA = {
    "type": "object",
    "properties": {
        "bullets": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["bullets"],
}

# Maps action kinds to their (prompt_template, schema) pairs
ACTION_PROMPTS_AND_SCHEMAS = {
    "vote": (VOTE, VOTE_SCHEMA),
    "badge_signup": (BADGE_SIGNUP, BADGE_SIGNUP_SCHEMA),
    "badge_vote": (BADGE_VOTE, SEAT_SCHEMA),
    "badge_transfer": (BADGE_TRANSFER, SEAT_SCHEMA),
    "seer_check": (SEER_CHECK, SEAT_SCHEMA),
    "wolf_kill": (WOLF_KILL, SEAT_SCHEMA),
    "witch": (WITCH, WITCH_SCHEMA),
    "guard": (GUARD, SEAT_SCHEMA),
    "hunter_shoot": (HUNTER_SHOOT, HUNTER_SCHEMA),
    "speech": (SPEECH, SPEECH_SCHEMA),
    "summary": (SUMMARY, SUMMARY_SCHEMA),
}
