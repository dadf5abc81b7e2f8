"""Bodies for the reply email that carries the Markdown attachment."""

from __future__ import annotations

from email_markdown.delivery.models import ProviderResult

SIGNATURE = "---\nEmail to Markdown Service"

GENERIC_BODY = "Your email has been converted to Markdown.\n\nThe markdown file is attached to this email."


def _provider_list(providers: list[str]) -> str:
    return ", ".join(providers)


def compose_failure_body(results: list[ProviderResult]) -> str:
    """List failed providers with their errors, then any that succeeded."""
    failed = [r for r in results if not r.outcome.success]
    succeeded = [r for r in results if r.outcome.success]
    reauth = [r.provider for r in failed if r.outcome.requires_reauth]

    lines = [
        "Your email has been converted to Markdown.",
        "",
        "The markdown file is attached to this email because some storage saves failed.",
        "",
        "**Storage Save Failures:**",
        "",
    ]
    for r in failed:
        note = " (re-authentication required)" if r.outcome.requires_reauth else ""
        lines.append(f"- {r.provider}: {r.outcome.error_message or 'Unknown error'}{note}")

    if succeeded:
        lines += ["", "**Successful Saves:**"]
        lines += [f"- {r.provider}: {r.outcome.file_path}" for r in succeeded]

    if reauth:
        lines += [
            "",
            f"**Action Required:** Please visit the registration page to re-authenticate "
            f"your {_provider_list(reauth)} connection(s).",
        ]

    lines += ["", SIGNATURE]
    return "\n".join(lines)


def compose_notification_body(delivery_method: str, results: list[ProviderResult]) -> str:
    """Pick the reply body for the outcome of a delivery."""
    if any(not r.outcome.success for r in results) and delivery_method != "email":
        return compose_failure_body(results)

    reauth = [r.provider for r in results if r.outcome.requires_reauth]
    if reauth:
        return (
            f"{GENERIC_BODY}\n\n**Important:** Your {_provider_list(reauth)} connection has "
            f"expired. Please visit the registration page to re-authenticate and restore "
            f"automatic saving.\n\n{SIGNATURE}"
        )

    saved_to = [r.provider for r in results if r.outcome.success]
    if delivery_method == "both" and saved_to:
        return (
            "Your email has been converted to Markdown.\n\n"
            f"The markdown file is attached to this email and has also been saved to your "
            f"{_provider_list(saved_to)}.\n\n{SIGNATURE}"
        )

    return f"{GENERIC_BODY}\n\n{SIGNATURE}"
