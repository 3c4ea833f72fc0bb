DEFAULT_LIMIT = 25
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw):
    try:
        limit = int(limit_raw) if limit_raw not in (None, '') else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw not in (None, '') else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def normalize_datatable_window(args):
    """Map DataTables ``draw/start/length`` onto (draw, limit, offset).

    ``limit``/``offset`` are honoured when ``start``/``length`` are absent so the
    same listing endpoints serve plain API clients.
    """
    try:
        draw = int(args.get('draw') or 1)
    except ValueError:
        raise ValueError('draw must be int')
    if args.get('length') is not None or args.get('start') is not None:
        limit, offset = normalize_pagination(args.get('length'), args.get('start'))
    else:
        limit, offset = normalize_pagination(args.get('limit'), args.get('offset'))
    return draw, limit, offset
