"""Peripheral-to-profile matching logic."""

from __future__ import annotations

from trainctl.core.model import DetectedDevice, DiscoveryTarget, Profile


def name_matches(name: str | None, target: DiscoveryTarget) -> bool:
    if not name:
        return False
    lower_name = name.lower()
    return any(token.lower() in lower_name for token in target.name_contains)


def match_score(device: DetectedDevice, profile: Profile) -> int:
    # Longest matching token wins so "Smart 2.0 Pro" beats "Smart".
    lower_name = device.name.lower()
    matched = [len(token) for token in profile.match.name_contains if token.lower() in lower_name]
    return max(matched, default=0)


def best_profile_for_device(device: DetectedDevice, profiles: dict[str, Profile]) -> Profile | None:
    best: Profile | None = None
    best_score = 0
    for profile in profiles.values():
        score = match_score(device, profile)
        if score > best_score:
            best = profile
            best_score = score
    return best
