"""System prompt for the MESH persona."""

from typing import Optional

from meshbot.config.schema import BotConfig
from meshbot.memory.models import CommunicationStyle, UserProfile

STYLE_HINTS = {
    CommunicationStyle.DETAILED: "Este usuário prefere respostas detalhadas, com passos e exemplos.",
    CommunicationStyle.CONCISE: "Este usuário prefere respostas curtas e diretas, em poucas linhas.",
    CommunicationStyle.PROFESSIONAL: "Mantenha um tom profissional e objetivo.",
}

TOPIC_LABELS = {
    "fluxo_caixa": "fluxo de caixa",
    "conciliacao_bancaria": "conciliação bancária",
    "relatorios": "relatórios",
    "dre": "DRE",
    "balanco_patrimonial": "balanço patrimonial",
    "processos": "processos",
    "compliance": "compliance",
}


def build_system_prompt(bot: Optional[BotConfig] = None, profile: Optional[UserProfile] = None) -> str:
    """
    Build the persona prompt, adapted to what we know about the user.

    Args:
        bot: Assistant identity
        profile: The user's derived profile, if any

    Returns:
        System prompt text
    """
    bot = bot or BotConfig()
    prompt = f"""Você é o {bot.name}, {bot.role} da {bot.company} com 5 anos de experiência.

IDENTIDADE:
- Nome: {bot.name}
- Empresa: {bot.company}
- Cargo: {bot.role}

EXPERTISE:
- Análise de fluxo de caixa
- Conciliação bancária
- Relatórios gerenciais, DRE e balanço patrimonial
- Compliance e auditoria
- Integração de sistemas (APIs ERP, Nibo)

COMPORTAMENTO:
- Converse como um profissional experiente: direto, prático e útil
- Use terminologia financeira apropriada
- Mantenha respostas concisas (máximo 3 parágrafos)
- Seja proativo em sugerir melhorias

Responda sempre em português brasileiro, de forma natural e profissional."""

    if profile is None:
        return prompt

    context = [STYLE_HINTS[profile.communication_style]]
    if profile.preferred_topics:
        topics = ", ".join(TOPIC_LABELS.get(t, t) for t in profile.preferred_topics[:3])
        context.append(f"Assuntos frequentes deste usuário: {topics}.")

    return prompt + "\n\nCONTEXTO DO USUÁRIO:\n" + "\n".join(f"- {line}" for line in context)
