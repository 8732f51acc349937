"""Core knowledge seeded into every fresh knowledge store."""

CORE_KNOWLEDGE = {
    "neurodiverse_learning": {
        "sensory_processing": {
            "visual_preferences": {"high_contrast": True, "minimal_animation": True},
            "auditory_preferences": {"clear_speech": True, "background_noise": False},
            "tactile_preferences": {"smooth_textures": True, "consistent_feedback": True},
        },
        "cognitive_patterns": {
            "routine_importance": "critical",
            "change_adaptation": "gradual",
            "information_processing": "sequential",
        },
        "communication_styles": {
            "direct_language": True,
            "visual_supports": True,
            "processing_time": "extended",
        },
    },
    "agentricai_protocols": {
        "agent_communication": {
            "priority_levels": ["critical", "high", "medium", "low"],
            "message_types": ["direct", "knowledge_update", "workflow_trigger", "emergency"],
            "routing_rules": "capability_based",
        },
        "knowledge_sharing": {
            "confidence_threshold": 0.7,
            "update_frequency": "real_time",
            "conflict_resolution": "last_write_wins",
        },
        "learning_adaptation": {
            "pattern_recognition": "continuous",
            "effectiveness_tracking": "per_interaction",
            "adaptation_speed": "conservative",
        },
    },
    "university_curriculum": {
        "adaptive_content": {
            "difficulty_scaling": "dynamic",
            "content_types": ["visual", "auditory", "kinesthetic", "mixed"],
            "assessment_methods": ["observation", "interaction", "completion"],
        },
        "progress_tracking": {
            "metrics": ["engagement", "completion", "retention", "application"],
            "reporting": "real_time",
            "privacy": "anonymized",
        },
    },
}
