"""Repository layer for the Dealerline CRM.

Provides CRUD and query methods for core CRM entities:
- leads: get_by_id, get_by_ids, get_by_phone, create, apply_changes, set_tags_and_status,
         move_to_stage, update_notes, delete_many, list_pool, claim, unassign_owner
- pipeline_stages: list_stages, first_stage, create_stage, update_stage,
                   reorder_stages, delete_stage, lead_counts
- tag_campaigns: list_active, get_initial_message_campaign, get_active_by_tags,
                 create_campaign, update_campaign, delete_campaign, save_initial_message
- enrollments: enroll, advance, pause_on_reply, count_active
- conversations: list_active, list_messages, add_message, mark_as_read,
                 update_delivery_status
- users: get_role, is_admin, set_role, update_profile, set_sms_notifications
- preferences: get_preferences, set_visible_columns, set_filters
"""
