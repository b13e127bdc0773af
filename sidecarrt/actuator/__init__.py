"""Actuator health indicators, application info, path resolution and HTTP endpoint dispatch."""