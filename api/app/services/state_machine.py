from app.errors import InvalidTransition


def formation_transition(current: str, member_count: int, target_size: int) -> tuple[str, bool]:
    """Return ``(next_status, fired)`` for a group whose joined count is now ``member_count``.

    ``fired`` is true only on the forming -> full edge. Full and dissolved are terminal.
    """
    if member_count > target_size:
        raise InvalidTransition(
            f"group would have {member_count} members, target size is {target_size}",
            member_count=member_count,
            target_size=target_size,
        )

    if current == "dissolved":
        return "dissolved", False

    if current == "full":
        return "full", False

    if member_count == target_size:
        return "full", True

    return "forming", False
