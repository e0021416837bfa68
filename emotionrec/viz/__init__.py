"""Result rendering helpers."""
