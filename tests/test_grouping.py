from pdf_region_service.core.grouping import group_by_page

from conftest import specs


def test_pages_come_back_ascending_with_input_order_inside():
    images = specs(
        ("a", 3, [0, 0, 10, 10]),
        ("b", 0, [0, 0, 10, 10]),
        ("c", 3, [0, 0, 20, 20]),
        ("d", 1, [0, 0, 10, 10]),
        ("e", 0, [0, 0, 30, 30]),
    )

    groups = group_by_page(images)

    assert [g.page_index for g in groups] == [0, 1, 3]
    assert [i.image_id for i in groups[0].images] == ["b", "e"]
    assert [i.image_id for i in groups[1].images] == ["d"]
    assert [i.image_id for i in groups[2].images] == ["a", "c"]


def test_every_image_lands_in_exactly_one_group():
    images = specs(*[(f"img{i}", i % 4, [0, 0, 10, 10]) for i in range(13)])
    groups = group_by_page(images)

    grouped = [image for g in groups for image in g.images]
    assert sorted(i.position for i in grouped) == list(range(13))


def test_empty_input_gives_no_groups():
    assert group_by_page([]) == []
