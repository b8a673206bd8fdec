"""
Dependency graph over task ids.

Edges point from a task to the tasks it depends on (task -> prerequisite).
Built once per task set so cycle detection and edge removal stay linear.
"""

from typing import Dict, List, Set, Iterable, Tuple

from CookPlan.models import Task


class DependencyGraph:
    def __init__(self, adjacency: Dict[str, List[str]]):
        # node -> ordered, de-duplicated prerequisites
        self.adjacency: Dict[str, List[str]] = {
            node: list(dict.fromkeys(deps)) for node, deps in adjacency.items()
        }

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "DependencyGraph":
        return cls({t.id: list(t.depends_on or []) for t in tasks})

    def missing_edges(self) -> List[Tuple[str, str]]:
        """(task_id, dependency_id) pairs whose dependency is not in the graph."""
        return [
            (node, dep)
            for node, deps in self.adjacency.items()
            for dep in deps
            if dep not in self.adjacency
        ]

    def dependents_of(self, node: str) -> List[str]:
        """Tasks that list `node` directly in their dependencies."""
        return [n for n, deps in self.adjacency.items() if node in deps]

    def without(self, node: str) -> "DependencyGraph":
        """Graph with `node` removed and every edge that pointed at it dropped."""
        return DependencyGraph({
            n: [d for d in deps if d != node]
            for n, deps in self.adjacency.items()
            if n != node
        })

    def cycles(self) -> List[List[str]]:
        """
        Groups of tasks that sit on a dependency cycle (strongly connected
        components with more than one member, or a task depending on itself).
        Iterative Tarjan so deep chains cannot hit the recursion limit.
        Members keep the graph's node order.
        """
        order = {node: i for i, node in enumerate(self.adjacency)}
        index: Dict[str, int] = {}
        lowlink: Dict[str, int] = {}
        on_stack: Set[str] = set()
        stack: List[str] = []
        components: List[List[str]] = []
        counter = 0

        for root in self.adjacency:
            if root in index:
                continue
            work = [(root, iter(self.adjacency[root]))]
            index[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack.add(root)

            while work:
                node, edges = work[-1]
                advanced = False
                for dep in edges:
                    if dep not in self.adjacency:
                        continue
                    if dep not in index:
                        index[dep] = lowlink[dep] = counter
                        counter += 1
                        stack.append(dep)
                        on_stack.add(dep)
                        work.append((dep, iter(self.adjacency[dep])))
                        advanced = True
                        break
                    if dep in on_stack:
                        lowlink[node] = min(lowlink[node], index[dep])
                if advanced:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])

                if lowlink[node] == index[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    if len(component) > 1 or node in self.adjacency[node]:
                        components.append(sorted(component, key=order.__getitem__))

        components.sort(key=lambda c: order[c[0]])
        return components
