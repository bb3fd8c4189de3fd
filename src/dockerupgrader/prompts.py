"""Interactive operator prompts."""

import logging

import click

logger = logging.getLogger("dockerupgrader")


class ConsoleOperator:
    """Asks the person running the tool; answers are recorded in the run log.

    Any object with the same ``confirm``/``prompt`` methods can stand in for it,
    which is how tests drive the workflows without a terminal. Ctrl-C or EOF at a
    prompt is raised as ``KeyboardInterrupt`` so workflows treat it as a cancel.
    """

    def confirm(self, text: str, default: bool = False) -> bool:
        try:
            answer = click.confirm(text, default=default)
        except click.Abort as exc:
            raise KeyboardInterrupt from exc
        logger.info("%s -> %s", text, "yes" if answer else "no")
        return answer

    def prompt(self, text: str, default: str = "") -> str:
        try:
            answer = click.prompt(text, default=default, show_default=bool(default))
        except click.Abort as exc:
            raise KeyboardInterrupt from exc
        logger.info("%s -> %s", text, answer or "<empty>")
        return answer.strip()
