"""
Block reference expansion.

INSERT entities are replaced by the entities of the referenced block,
transformed into world space. Expansion is a depth-first walk carrying the
chain of block names on the current branch; a reference to a block already
on that chain is a cycle and the branch is cut with a single
CircularReference issue. The same block may still be referenced from
separate branches.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from geoloader.core.dxf.matrix import AffineTransform
from geoloader.models.dxf import DxfBlock, DxfEntity, DxfInsert
from geoloader.models.issues import IssueCode, IssueLog

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32


class BlockExpander:
    """
    Flatten block references into world-space entities.

    Example:
        expander = BlockExpander(document.blocks, issues)
        flat = expander.expand(document.entities)
    """

    def __init__(
        self,
        blocks: Dict[str, DxfBlock],
        issues: Optional[IssueLog] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        """
        Initialize BlockExpander.

        Args:
            blocks: Block definitions by name
            issues: Issue log to record problems in (a new one if omitted)
            max_depth: Maximum INSERT nesting depth
        """
        self.blocks = blocks
        self.issues = issues if issues is not None else IssueLog()
        self.max_depth = max_depth

    def expand(
        self,
        entities: Sequence[DxfEntity],
        transform: Optional[AffineTransform] = None,
    ) -> List[DxfEntity]:
        """
        Expand every INSERT in ``entities``.

        Args:
            entities: Top-level entities (model space)
            transform: Transform applied to everything (identity if omitted)

        Returns:
            Entities with no INSERTs left, in drawing order
        """
        output: List[DxfEntity] = []
        self._expand(entities, transform, (), None, output)
        logger.debug(f"Expanded {len(entities)} entities into {len(output)}")
        return output

    def _expand(
        self,
        entities: Sequence[DxfEntity],
        transform: Optional[AffineTransform],
        block_path: Tuple[str, ...],
        insert_layer: Optional[str],
        output: List[DxfEntity],
    ) -> None:
        for entity in entities:
            # Layer "0" inside a block takes the layer of the reference
            if insert_layer is not None and entity.layer == "0":
                entity = entity.with_layer(insert_layer)

            if isinstance(entity, DxfInsert):
                self._expand_insert(entity, transform, block_path, output)
            elif transform is None:
                output.append(entity)
            else:
                output.append(entity.transform(transform))

    def _expand_insert(
        self,
        insert: DxfInsert,
        transform: Optional[AffineTransform],
        block_path: Tuple[str, ...],
        output: List[DxfEntity],
    ) -> None:
        name = insert.block
        if name in block_path:
            cycle = " -> ".join(block_path + (name,))
            self.issues.warning(
                IssueCode.CIRCULAR_REFERENCE,
                f"Circular block reference {cycle}",
                handle=insert.handle,
                details={"path": list(block_path + (name,))},
            )
            return

        block = self.blocks.get(name)
        if block is None:
            self.issues.warning(
                IssueCode.MISSING_BLOCK,
                f"INSERT references undefined block {name!r}",
                handle=insert.handle,
                details={"block": name},
            )
            return

        if len(block_path) >= self.max_depth:
            self.issues.warning(
                IssueCode.MAX_NESTING_EXCEEDED,
                f"Block nesting deeper than {self.max_depth} at {name!r}, branch dropped",
                handle=insert.handle,
                details={"path": list(block_path + (name,))},
            )
            return

        # Block contents are expanded once; every array cell gets a copy
        contents: List[DxfEntity] = []
        self._expand(block.entities, None, block_path + (name,), insert.layer, contents)

        for row in range(max(insert.rows, 1)):
            for column in range(max(insert.columns, 1)):
                local = AffineTransform.for_insert(
                    insert.position,
                    rotation=insert.rotation,
                    scale=insert.scale,
                    base_point=block.position,
                    column=column,
                    row=row,
                    column_spacing=insert.col_spacing,
                    row_spacing=insert.row_spacing,
                )
                combined = local if transform is None else transform.compose(local)
                output.extend(entity.transform(combined) for entity in contents)


def expand_blocks(
    entities: Sequence[DxfEntity],
    blocks: Dict[str, DxfBlock],
    issues: Optional[IssueLog] = None,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> List[DxfEntity]:
    """Expand block references (convenience function)."""
    return BlockExpander(blocks, issues, max_depth).expand(entities)
