"""Environment subsystem (flowers, area, scene tree, host physics stand-ins).

Flowers hold nectar; the area discovers them in a scene tree and resets
them each episode; physics answers overlap queries for spawning and feeding.
"""
