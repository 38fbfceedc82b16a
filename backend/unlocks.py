def build_reverse_prereq_map(
    courses,
    only_codes: set[str] | None = None,
) -> dict[str, list[str]]:
    """
    Builds a reverse hard-prerequisite map: for each course, which courses directly
    list it as a hard prerequisite.

    Returns: {"CSE110": ["CSE111", "CSE260"], ...}

    only_codes restricts both ends of every edge to the given set (e.g. the
    student's unfinished courses). Only direct prerequisites (one level deep).
    """
    reverse: dict[str, list[str]] = {}

    for course in courses:
        if only_codes is not None and course.course_code not in only_codes:
            continue
        for prereq_code in course.prereq_hard:
            if only_codes is not None and prereq_code not in only_codes:
                continue
            reverse.setdefault(prereq_code, [])
            if course.course_code not in reverse[prereq_code]:
                reverse[prereq_code].append(course.course_code)

    return reverse


def compute_chain_depths(
    reverse_map: dict[str, list[str]],
) -> dict[str, int]:
    """
    Longest downstream hard-prerequisite chain for every course in the map.

    A course nothing depends on has depth 0, so
    CSE110 -> CSE111 -> CSE220 -> CSE221
    gives CSE110 depth 3 and CSE221 depth 0.

    Iterative post-order walk, O(V+E). An edge that closes a cycle counts as
    a dead end instead of recursing forever.
    """
    depths: dict[str, int] = {}
    on_path: set[str] = set()

    for root in reverse_map:
        if root in depths:
            continue
        stack = [(root, iter(reverse_map.get(root, [])))]
        on_path.add(root)
        while stack:
            course, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                on_path.discard(course)
                depths[course] = max(
                    (1 + depths.get(c, 0) for c in reverse_map.get(course, []) if c not in on_path),
                    default=0,
                )
            elif child not in depths and child not in on_path:
                on_path.add(child)
                stack.append((child, iter(reverse_map.get(child, []))))

    return depths


def get_direct_unlocks(
    course_code: str,
    reverse_map: dict[str, list[str]],
    limit: int = 3,
) -> list[str]:
    """
    Returns up to `limit` courses directly unlocked by completing `course_code`.
    A course is "unlocked" if it lists `course_code` as a direct hard prerequisite.
    """
    return reverse_map.get(course_code, [])[:limit]
