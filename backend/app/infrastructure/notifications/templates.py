"""
Reminder email template.
"""

from datetime import datetime
from html import escape

PT_BR_MONTHS = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)


def format_date_pt_br(moment: datetime) -> str:
    """e.g. 05 de março de 2024"""
    return f"{moment.day:02d} de {PT_BR_MONTHS[moment.month - 1]} de {moment.year}"


def reminder_subject(days_remaining: int) -> str:
    return f"⏰ Sua assinatura vence em {days_remaining} dias"


def render_reminder_email(
    name: str,
    days_remaining: int,
    next_billing_date: datetime,
    manage_url: str,
) -> str:
    """HTML body for the expiration reminder."""
    return f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #667eea; color: white; padding: 30px; border-radius: 10px 10px 0 0; text-align: center;">
      <h1 style="margin: 0;">⏰ Lembrete de Renovação</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px; border-radius: 0 0 10px 10px;">
      <p>Olá <strong>{escape(name)}</strong>,</p>
      <div style="background: #fef3c7; border-left: 4px solid #f59e0b; padding: 15px; margin: 20px 0; border-radius: 4px;">
        <strong>⚠️ Atenção:</strong> Sua assinatura vence em <strong>{days_remaining} dias</strong>!
      </div>
      <p>Sua assinatura está próxima do vencimento:</p>
      <p style="text-align: center; font-size: 24px; font-weight: bold; color: #667eea; margin: 20px 0;">
        {format_date_pt_br(next_billing_date)}
      </p>
      <p>Para garantir a continuidade dos seus serviços, renove antes dessa data.</p>
      <p style="text-align: center;">
        <a href="{escape(manage_url)}" style="display: inline-block; background: #667eea; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; font-weight: 600;">
          Gerenciar Minha Assinatura
        </a>
      </p>
    </div>
    <div style="text-align: center; margin-top: 30px; color: #6b7280; font-size: 14px;">
      <p>Este é um email automático. Por favor, não responda.</p>
    </div>
  </body>
</html>
"""
