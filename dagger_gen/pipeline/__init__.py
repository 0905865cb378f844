"""Confirmation-gated content pipeline.

Stages and their outputs:

  frame        selected_frame + frame_confirmed
  outline      outline (ordered SceneBriefs) + is_confirmed
  scenes       one Scene per brief: pending → generating → draft → confirmed
  npcs         CompiledNPCs + confirmed_npc_ids
  adversaries  SelectedAdversaries (identity: name) + confirmed_adversary_ids
  items        SelectedItems (identity: "<category>:<name>") + confirmed_item_ids
  echoes       Echoes + confirmed_echo_ids

Every operation is a pure `(ContentState, ...) → ContentState` function.
Operations that are not allowed in the current state (redrafting a confirmed
scene, replacing a confirmed frame) raise StageError; the SessionContext
records nothing in that case.

Gating: gates.can_leave_stage(stage, dials, content) decides whether the
session may move past a stage. Generation (pipeline.generation) wraps LLM
calls so any failure lands in that stage's `<stage>_error` field without
touching confirmed upstream data.
"""

# Re-export the public surface so callers can `from dagger_gen import pipeline`.

from .state import (  # noqa: F401
    PERSISTED_FIELDS,
    AdversaryFilters,
    ContentState,
    ItemFilters,
    GenerationError,
    StageError,
    clamp_quantity,
    reset_content,
    set_error,
    set_loading,
)

from .frames import (  # noqa: F401
    clear_frame,
    confirm_frame,
    select_frame,
    set_available_frames,
    set_custom_frame_draft,
)

from .outline import (  # noqa: F401
    clear_outline,
    confirm_outline,
    reorder_scene_briefs,
    set_outline,
    update_scene_brief,
)

from .scenes import (  # noqa: F401
    append_scene_streaming_content,
    clear_scenes,
    confirm_all_scenes,
    confirm_scene,
    current_scene,
    fail_scene_generation,
    initialize_scenes_from_outline,
    navigate_to_next_scene,
    navigate_to_previous_scene,
    reset_scene,
    set_current_scene,
    set_scene_draft,
    start_scene_generation,
)

from .npcs import (  # noqa: F401
    add_npc,
    append_npc_streaming_content,
    clear_npcs,
    collect_scene_npcs,
    confirm_all_npcs,
    confirm_npc,
    set_npcs,
    set_refining_npc_id,
    update_npc,
)

from .adversaries import (  # noqa: F401
    clear_adversaries,
    confirm_adversary,
    confirm_all_adversaries,
    deselect_adversary,
    filtered_adversaries,
    select_adversary,
    set_adversary_filters,
    set_available_adversaries,
    update_adversary_quantity,
)

from .items import (  # noqa: F401
    clear_items,
    confirm_all_items,
    confirm_item,
    deselect_item,
    filtered_items,
    select_item,
    set_available_items,
    set_item_filters,
    update_item_quantity,
)

from .echoes import (  # noqa: F401
    add_echo,
    append_echo_streaming_content,
    clear_echoes,
    confirm_all_echoes,
    confirm_echo,
    echoes_by_category,
    set_active_echo_category,
    set_echoes,
    update_echo,
)

from .gates import (  # noqa: F401
    can_complete,
    can_leave_stage,
    can_proceed_to_adversaries,
    can_proceed_to_echoes,
    can_proceed_to_items,
    can_proceed_to_npcs,
    can_proceed_to_outline,
    can_proceed_to_scenes,
    gate_for_stage,
)
